"""
Notary key material and service URL extraction.

The notary public key may be embedded in the attestation (root or
``meta``), supplied by deployment configuration, or fetched from the
notary's ``/info`` endpoint. This module only reads; fetching and
caching live in :mod:`verifier.app.services.notary_client`.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from verifier.app.utils.payload import as_record, pick_string

NOTARY_KEY_ALIASES: Tuple[str, ...] = (
    "notaryPublicKeyPem",
    "notaryKeyPem",
    "notary_key_pem",
    "notaryPubKeyPem",
    "publicKeyPem",
)

NOTARY_URL_ALIASES: Tuple[str, ...] = ("notaryUrl", "notary_url", "notary")

_DEFAULT_PORTS = {"http": 80, "https": 443}

NOTARY_INFO_KEY_ALIASES: Tuple[str, ...] = (
    "publicKey",
    "public_key",
    "notaryPublicKeyPem",
    "notary_key_pem",
)


def extract_notary_public_key_pem(
    attestation: Any,
    env_fallback: Optional[str] = "",
) -> Optional[str]:
    """
    Resolve a notary key PEM: attestation root, then ``meta``, then the
    configured fallback. First non-empty value wins.
    """
    root = as_record(attestation)
    meta = as_record(root.get("meta"))

    key = pick_string(root, NOTARY_KEY_ALIASES)
    if key:
        return key

    meta_key = pick_string(meta, NOTARY_KEY_ALIASES)
    if meta_key:
        return meta_key

    fallback = (env_fallback or "").strip()
    return fallback or None


def _normalize_url(value: str) -> Optional[str]:
    """
    Canonicalize an absolute URL for use as a cache key.

    Scheme and host are lowercased and a trailing slash is removed.
    """
    try:
        parts = urlsplit(value)
        hostname = parts.hostname
        port = parts.port
    except ValueError:
        return None

    if not parts.scheme or not hostname:
        return None
    if parts.scheme.lower() not in {"http", "https"}:
        return None

    scheme = parts.scheme.lower()
    netloc = hostname.lower()
    if ":" in netloc:
        netloc = f"[{netloc}]"
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{netloc}:{port}"
    if parts.username:
        credentials = parts.username
        if parts.password:
            credentials = f"{credentials}:{parts.password}"
        netloc = f"{credentials}@{netloc}"

    normalized = urlunsplit(
        (scheme, netloc, parts.path or "/", parts.query, parts.fragment)
    )
    return normalized[:-1] if normalized.endswith("/") else normalized


def extract_notary_url(attestation: Any) -> Optional[str]:
    """
    Resolve the notary service URL, preferring ``meta`` over the root.

    Returns None unless the value parses as an absolute http(s) URL.
    """
    root = as_record(attestation)
    meta = as_record(root.get("meta"))

    value = pick_string(meta, NOTARY_URL_ALIASES) or pick_string(
        root, NOTARY_URL_ALIASES
    )
    if not value:
        return None

    return _normalize_url(value)


def extract_public_key_from_notary_info(info: Any) -> Optional[str]:
    """Read the public key from a notary ``/info`` response body."""
    return pick_string(as_record(info), NOTARY_INFO_KEY_ALIASES)
