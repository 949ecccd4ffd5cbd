import json

from verifier.app.checks.attestation.notary import (
    extract_notary_public_key_pem,
    extract_notary_url,
    extract_public_key_from_notary_info,
)
from verifier.app.checks.attestation.presentation import (
    MAX_DEPTH,
    extract_presentation_hex,
)

PEM = "-----BEGIN PUBLIC KEY-----\nMFkw\n-----END PUBLIC KEY-----"


def _nest(leaf, levels):
    node = leaf
    for _ in range(levels):
        node = {"presentation": node}
    return node


# ---------------------------------------------------------------------------
# Presentation hex
# ---------------------------------------------------------------------------


def test_presentation_key_with_prefixed_hex():
    assert extract_presentation_hex({"presentation": "0xdeadbeef"}) == "deadbeef"


def test_bare_hex_string_is_returned_directly():
    assert extract_presentation_hex("0xABCD") == "abcd"


def test_tlsn_js_envelope_uses_data_field():
    envelope = {"version": "0.1.0-alpha.7", "data": "0x0102ff"}
    assert extract_presentation_hex(envelope) == "0102ff"


def test_json_encoded_string_is_parsed():
    payload = {"proof": json.dumps({"presentationHex": "cafe"})}
    assert extract_presentation_hex(payload) == "cafe"


def test_meta_section_is_searched_after_root_keys():
    payload = {"meta": {"attestationHex": "beef"}}
    assert extract_presentation_hex(payload) == "beef"

    both = {"proofHex": "aa", "meta": {"presentationHex": "bb"}}
    assert extract_presentation_hex(both) == "aa"


def test_candidate_key_order_is_the_tie_break():
    payload = {"data": "0x02", "presentationHex": "0x01"}
    assert extract_presentation_hex(payload) == "01"


def test_non_hex_values_are_ignored():
    payload = {"presentation": "not hex", "data": "0x99"}
    assert extract_presentation_hex(payload) == "99"


def test_depth_five_succeeds_and_depth_six_fails():
    assert MAX_DEPTH == 5
    assert extract_presentation_hex(_nest("0xabcdef", 5)) == "abcdef"
    assert extract_presentation_hex(_nest("0xabcdef", 6)) is None


def test_missing_presentation_returns_none():
    assert extract_presentation_hex({"amount": "10"}) is None
    assert extract_presentation_hex(None) is None
    assert extract_presentation_hex([{"presentation": "0xaa"}]) is None


def test_deeply_nested_json_string_is_not_a_presentation():
    assert extract_presentation_hex({"presentation": "[" * 100000}) is None
    assert extract_presentation_hex({"presentation": "[" * 100000, "data": "0xab"}) == "ab"


# ---------------------------------------------------------------------------
# Notary key and URL
# ---------------------------------------------------------------------------


def test_notary_key_prefers_root_then_meta_then_fallback():
    root = {"notaryKeyPem": "root-key", "meta": {"notaryPublicKeyPem": "meta-key"}}
    assert extract_notary_public_key_pem(root, "env-key") == "root-key"

    meta_only = {"meta": {"publicKeyPem": " meta-key "}}
    assert extract_notary_public_key_pem(meta_only, "env-key") == "meta-key"

    assert extract_notary_public_key_pem({}, "  env-key  ") == "env-key"
    assert extract_notary_public_key_pem({}, "") is None
    assert extract_notary_public_key_pem("garbage", None) is None


def test_notary_url_prefers_meta_and_is_canonicalized():
    payload = {
        "notaryUrl": "https://root.example",
        "meta": {"notary_url": "HTTPS://Notary.Example:443/v1/"},
    }
    assert extract_notary_url(payload) == "https://notary.example/v1"


def test_notary_url_keeps_non_default_port():
    assert (
        extract_notary_url({"notary": "http://localhost:7047/"})
        == "http://localhost:7047"
    )


def test_notary_url_requires_absolute_http_url():
    assert extract_notary_url({"notaryUrl": "notary.example"}) is None
    assert extract_notary_url({"notaryUrl": "ftp://notary.example"}) is None
    assert extract_notary_url({}) is None


def test_public_key_from_notary_info():
    assert extract_public_key_from_notary_info({"publicKey": PEM}) == PEM
    assert extract_public_key_from_notary_info({"public_key": " k "}) == "k"
    assert extract_public_key_from_notary_info({"version": "1"}) is None
    assert extract_public_key_from_notary_info(None) is None
