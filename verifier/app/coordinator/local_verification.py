"""
Local presentation verification.

Invokes the external verification collaborator on the presentation found
in an attestation, and reduces its dialect-varying result into a
uniform VerificationResult.

The collaborator is an opaque callable::

    verify_fn(presentation_hex: str, notary_public_key_pem: str) -> result

It may be synchronous or return an awaitable. ``result`` is either a
mapping or a foreign object exposing ``sent``, ``recv``, ``time``,
``server_name`` attributes and, optionally, a ``free()`` disposal method.
Foreign handles are released exactly once, on every exit path, right
after the fields are read out of them.
"""

from __future__ import annotations

import inspect
import logging
import math
import re
from contextlib import contextmanager
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    Union,
)

from verifier.app.checks.attestation.presentation import extract_presentation_hex
from verifier.app.errors import (
    ConfigurationError,
    ExtractionError,
    MissingKeyError,
    VerificationFailure,
)
from verifier.app.schemas.claims import VerificationResult
from verifier.app.utils.payload import pick_number, pick_string

logger = logging.getLogger("verifier.local_verification")

VerifyFunction = Callable[[str, str], Union[Any, Awaitable[Any]]]

SERVER_NAME_ALIASES = ("server_name", "serverName", "sourceHost", "host")
TIME_ALIASES = ("time", "timestamp")

# Attributes read from non-mapping collaborator results.
_RESULT_ATTRIBUTES = ("sent", "recv") + SERVER_NAME_ALIASES + TIME_ALIASES

REDACTED = "[redacted]"
_PEM_BLOCK_RE = re.compile(r"-----BEGIN [^-]+-----.*?-----END [^-]+-----", re.DOTALL)


# ------------------------------------------------------------------
# Foreign result handling
# ------------------------------------------------------------------


def _result_view(raw: Any) -> Dict[str, Any]:
    """Project a collaborator result onto a plain string-keyed mapping."""
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)

    view: Dict[str, Any] = {}
    for name in _RESULT_ATTRIBUTES:
        value = getattr(raw, name, None)
        if value is not None and not callable(value):
            view[name] = value
    return view


def _release_capability(raw: Any) -> Optional[Callable[[], Any]]:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        candidate = raw.get("free")
    else:
        candidate = getattr(raw, "free", None)
    return candidate if callable(candidate) else None


@contextmanager
def released(raw: Any) -> Iterator[Any]:
    """
    Scope a foreign verification result.

    The result's ``free()`` is invoked once when the block exits, whether
    it exits normally or by raising. A missing ``free`` is a no-op.
    """
    release = _release_capability(raw)
    try:
        yield raw
    finally:
        if release is not None:
            release()


def _redact(message: str, secrets: Iterable[str]) -> str:
    """Strip key material and presentation bytes from a collaborator message."""
    for secret in secrets:
        if secret:
            message = message.replace(secret, REDACTED)
    return _PEM_BLOCK_RE.sub(REDACTED, message)


def reduce_verification_result(presentation_hex: str, raw: Any) -> VerificationResult:
    """Reduce a raw collaborator result into a VerificationResult."""
    view = _result_view(raw)

    sent = view.get("sent")
    recv = view.get("recv")

    timestamp_raw = pick_number(view, TIME_ALIASES)
    timestamp = math.trunc(timestamp_raw) if timestamp_raw is not None else None

    return VerificationResult(
        presentation_hex=presentation_hex,
        sent=sent if isinstance(sent, str) else "",
        recv=recv if isinstance(recv, str) else "",
        server_name=pick_string(view, SERVER_NAME_ALIASES),
        timestamp=timestamp,
    )


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


async def verify_presentation_locally(
    *,
    attestation: Any,
    notary_public_key_pem: Any,
    verify_fn: Optional[VerifyFunction],
) -> VerificationResult:
    """
    Verify the attestation's presentation against a notary key.

    Raises:
        ConfigurationError: no verification collaborator is wired.
        MissingKeyError: the notary key is missing or not text.
        ExtractionError: no presentation hex could be found.
        VerificationFailure: the collaborator raised.
    """
    if verify_fn is None or not callable(verify_fn):
        raise ConfigurationError(
            details=["verification function is required"],
        )

    if not isinstance(notary_public_key_pem, str) or not notary_public_key_pem.strip():
        raise MissingKeyError(details=["missing notary public key PEM"])

    presentation_hex = extract_presentation_hex(attestation)
    if not presentation_hex:
        raise ExtractionError(
            details=["unable to extract presentation hex from attestation payload"],
        )

    try:
        raw_result = verify_fn(presentation_hex, notary_public_key_pem)
        if inspect.isawaitable(raw_result):
            raw_result = await raw_result
    except Exception as exc:
        logger.warning(
            "presentation_verification_failed",
            extra={
                "error_type": type(exc).__name__,
                "presentation_bytes": len(presentation_hex) // 2,
            },
        )
        message = _redact(
            str(exc) or type(exc).__name__,
            (notary_public_key_pem, presentation_hex),
        )
        raise VerificationFailure(details=[message]) from exc

    with released(raw_result):
        result = reduce_verification_result(presentation_hex, raw_result)

    logger.info(
        "presentation_verified",
        extra={
            "server_name": result.server_name,
            "timestamp": result.timestamp,
            "recv_chars": len(result.recv),
        },
    )
    return result
