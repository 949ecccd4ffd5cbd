"""
Presentation extraction from attestation payloads.

Locates the hex-encoded presentation artifact inside an attestation of
unknown shape. Supported dialects include a bare hex string, a tlsn-js
presentation envelope (``{"version": ..., "data": "0x..."}``), snake_case
and camelCase variants, JSON documents encoded as strings, and the same
keys nested under ``meta``.

Extraction is pure and deterministic. The candidate-key order below is the
total tie-break between competing fields.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

from verifier.app.utils.payload import (
    as_record,
    maybe_parse_json_string,
    normalize_hex_string,
)

# Priority order is part of the contract.
PRESENTATION_KEYS: Tuple[str, ...] = (
    "presentationHex",
    "presentation_hex",
    "presentation",
    "proof",
    "proofHex",
    "attestationHex",
    "data",
)

MAX_DEPTH = 5


def extract_presentation_hex(node: Any, depth: int = 0) -> Optional[str]:
    """
    Recursively search ``node`` for a presentation hex string.

    A string that is itself valid hex wins immediately over any structural
    search. Recursion stops once ``depth`` exceeds MAX_DEPTH, which bounds
    work on adversarial or cyclic input.

    Returns the lowercase hex without a ``0x`` prefix, or None.
    """
    if depth > MAX_DEPTH:
        return None

    direct = normalize_hex_string(node)
    if direct:
        return direct

    parsed = maybe_parse_json_string(node)
    if parsed is not None:
        nested = extract_presentation_hex(parsed, depth + 1)
        if nested:
            return nested

    record = as_record(node)
    if not record:
        return None

    for key in PRESENTATION_KEYS:
        nested = extract_presentation_hex(record.get(key), depth + 1)
        if nested:
            return nested

    meta = as_record(record.get("meta"))
    for key in PRESENTATION_KEYS:
        nested = extract_presentation_hex(meta.get(key), depth + 1)
        if nested:
            return nested

    return None
