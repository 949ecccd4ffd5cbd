import math

import pytest

from verifier.app.utils.hashing import serialize_payload, sha256_hex
from verifier.app.utils.payload import (
    as_record,
    is_unsigned_integer_text,
    maybe_parse_json_string,
    normalize_hex_string,
    number_to_text,
    pick_number,
    pick_string,
    pick_text,
    to_finite_number,
)


def test_as_record_only_accepts_mappings():
    assert as_record({"a": 1}) == {"a": 1}
    assert as_record([1, 2]) == {}
    assert as_record("text") == {}
    assert as_record(None) == {}


def test_maybe_parse_json_string_requires_object_or_array_text():
    assert maybe_parse_json_string('  {"a": 1} ') == {"a": 1}
    assert maybe_parse_json_string("[1, 2]") == [1, 2]
    assert maybe_parse_json_string("42") is None
    assert maybe_parse_json_string("{not json") is None
    assert maybe_parse_json_string({"a": 1}) is None


def test_maybe_parse_json_string_survives_hostile_documents():
    assert maybe_parse_json_string("[" * 100000) is None
    assert maybe_parse_json_string('{"a": NaN}') is None
    assert maybe_parse_json_string("[Infinity]") is None


@pytest.mark.parametrize(
    "value, expected",
    [
        ("0xDEADBEEF", "deadbeef"),
        ("  AbC123  ", "abc123"),
        ("0x", None),
        ("", None),
        ("xyz", None),
        ("0xzz", None),
        (1234, None),
    ],
)
def test_normalize_hex_string(value, expected):
    assert normalize_hex_string(value) == expected


def test_to_finite_number_rejects_bools_and_non_finite():
    assert to_finite_number(True) is None
    assert to_finite_number(float("nan")) is None
    assert to_finite_number(float("inf")) is None
    assert to_finite_number("1e400") is None
    assert to_finite_number("abc") is None
    assert to_finite_number(None) is None


def test_to_finite_number_parses_numeric_strings():
    assert to_finite_number(" 1739102400 ") == 1739102400
    assert isinstance(to_finite_number("1739102400"), int)
    assert to_finite_number("-12") == -12
    assert math.isclose(to_finite_number("10.5"), 10.5)
    assert to_finite_number("1e3") == 1000.0


def test_to_finite_number_treats_oversized_integers_as_absent():
    assert to_finite_number("9" * 5000) is None
    assert to_finite_number("9" * 400) is None
    assert to_finite_number(10**400) is None
    assert to_finite_number(-(10**400)) is None
    assert to_finite_number(2**70) == 2**70
    assert pick_text({"amount": 10**400}, ("amount",)) is None


def test_number_to_text_matches_json_rendering():
    assert number_to_text(10.0) == "10"
    assert number_to_text(10.25) == "10.25"
    assert number_to_text(7) == "7"


def test_pick_string_returns_first_non_empty_trimmed_value():
    record = {"a": "  ", "b": None, "c": " value ", "d": "later"}
    assert pick_string(record, ("a", "b", "c", "d")) == "value"
    assert pick_string(record, ("missing",)) is None


def test_pick_text_renders_numbers_but_not_bools():
    assert pick_text({"amount": 1000000}, ("amount",)) == "1000000"
    assert pick_text({"amount": 12.0}, ("amount",)) == "12"
    assert pick_text({"amount": True}, ("amount",)) is None
    assert pick_text({"amount": float("nan"), "alt": "5"}, ("amount", "alt")) == "5"


def test_pick_number_skips_unparseable_candidates():
    record = {"timestamp": "soon", "time": "1739102400"}
    assert pick_number(record, ("timestamp", "time")) == 1739102400


def test_is_unsigned_integer_text():
    assert is_unsigned_integer_text("1000000")
    assert is_unsigned_integer_text(" 42 ")
    assert not is_unsigned_integer_text("10.00")
    assert not is_unsigned_integer_text("-1")
    assert not is_unsigned_integer_text(None)


def test_serialize_payload_is_compact_and_keeps_key_order():
    payload = {"b": 1, "a": [1, 2], "name": "Zoë"}
    assert serialize_payload(payload) == '{"b":1,"a":[1,2],"name":"Zoë"}'


def test_serialize_payload_keeps_python_float_rendering():
    assert serialize_payload({"a": 1.0, "b": 1e21}) == '{"a":1.0,"b":1e+21}'


def test_sha256_hex_has_prefix_and_known_value():
    digest = sha256_hex("abc")
    assert digest == (
        "0xba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )
    assert sha256_hex(b"abc") == digest


def test_sha256_hex_rejects_non_text_input():
    with pytest.raises(TypeError):
        sha256_hex(123)  # type: ignore[arg-type]
