"""
Uniform lookup helpers for untrusted attestation payloads.

Attestation payloads arrive in several historical dialects: nested
sections, JSON documents encoded as strings, camelCase and snake_case
keys side by side. Every component reads them through the same small set
of helpers so that field resolution stays a matter of static alias
tables rather than ad-hoc probing.

All helpers are pure. None of them raise on malformed input.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Iterable, Mapping, Optional, Union

Number = Union[int, float]

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")
_DIGITS_RE = re.compile(r"^[0-9]+$")
_SIGNED_DIGITS_RE = re.compile(r"^[+-]?[0-9]+$")
_NUMERIC_RE = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?$")


# ------------------------------------------------------------------
# Structural coercion
# ------------------------------------------------------------------


def as_record(value: Any) -> Mapping[str, Any]:
    """Return ``value`` if it is a mapping, otherwise an empty mapping."""
    if isinstance(value, Mapping):
        return value
    return {}


def reject_json_constant(name: str) -> Any:
    """``parse_constant`` hook refusing ``NaN`` and ``Infinity``, which are not JSON."""
    raise ValueError(f"invalid JSON constant: {name}")


def maybe_parse_json_string(value: Any) -> Any:
    """
    Parse ``value`` as JSON when it is a string holding an object or array.

    Returns None for anything else, including malformed JSON, non-standard
    constants and documents nested too deeply to decode.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed.startswith(("{", "[")):
        return None
    try:
        return json.loads(trimmed, parse_constant=reject_json_constant)
    except (ValueError, RecursionError):
        return None


# ------------------------------------------------------------------
# Scalar normalization
# ------------------------------------------------------------------


def normalize_hex_string(value: Any) -> Optional[str]:
    """
    Normalize a hex string to lowercase without a ``0x`` prefix.

    Returns None when ``value`` is not a non-empty hex string.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if trimmed.startswith("0x") and _HEX_RE.match(trimmed[2:]):
        return trimmed[2:].lower()
    if _HEX_RE.match(trimmed):
        return trimmed.lower()
    return None


def is_unsigned_integer_text(value: Any) -> bool:
    if value is None:
        return False
    return bool(_DIGITS_RE.match(str(value).strip()))


def to_finite_number(value: Any) -> Optional[Number]:
    """
    Coerce a number or numeric string to a finite int/float.

    Booleans are rejected even though they subclass ``int``. Integers too
    large to be represented as a float count as not finite.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _finite_int(value)
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
        text = value.strip()
        if _SIGNED_DIGITS_RE.match(text):
            try:
                return _finite_int(int(text))
            except ValueError:
                # beyond the interpreter's int string conversion limit
                return None
        parsed = float(text)
        return parsed if math.isfinite(parsed) else None
    return None


def _finite_int(value: int) -> Optional[int]:
    try:
        float(value)
    except OverflowError:
        return None
    return value


def number_to_text(value: Number) -> str:
    """Render a number the way a JSON producer would (``10``, not ``10.0``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


# ------------------------------------------------------------------
# Alias resolution
# ------------------------------------------------------------------


def pick_string(record: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    """Return the first non-empty (trimmed) string found under ``keys``."""
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def pick_text(record: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    """
    Like :func:`pick_string`, but finite numbers are accepted and rendered
    as text.
    """
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if to_finite_number(value) is not None:
                return number_to_text(value)
    return None


def pick_number(record: Mapping[str, Any], keys: Iterable[str]) -> Optional[Number]:
    """Return the first finite number (or numeric string) found under ``keys``."""
    for key in keys:
        parsed = to_finite_number(record.get(key))
        if parsed is not None:
            return parsed
    return None
