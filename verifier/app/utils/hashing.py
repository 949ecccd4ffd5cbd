"""
Hashing primitives for receipt commitments.

Current scope:
- SHA-256 digests rendered as ``0x``-prefixed lowercase hex
- Compact JSON serialization of attestation payloads prior to hashing

IMPORTANT DESIGN RULE:
- Serialization preserves the caller's key order. Two payloads that differ
  only in key order produce different digests. Callers that need parity
  across implementations must fix field order before submitting.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Union


def serialize_payload(payload: Any) -> str:
    """
    Serialize an attestation payload to compact JSON text.

    No whitespace between tokens, non-ASCII characters emitted verbatim,
    insertion order kept. Floats use Python's ``repr`` (``1.0``, ``1e+21``),
    so a payload carrying integral floats does not serialize byte-for-byte
    like a JavaScript ``JSON.stringify`` of the same document. Payloads of
    strings, integers and booleans do.
    """
    return json.dumps(
        payload,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def sha256_hex(value: Union[str, bytes, bytearray]) -> str:
    """
    Compute a SHA-256 digest with an explicit ``0x`` prefix.

    Text input is encoded as UTF-8 before hashing.
    """
    if isinstance(value, str):
        value = value.encode("utf-8")
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError(
            "sha256_hex expects text or bytes, "
            f"got {type(value).__name__}"
        )

    return f"0x{hashlib.sha256(value).hexdigest()}"
