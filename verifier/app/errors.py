"""
Rejection taxonomy for the attestation verification pipeline.

Every failure the pipeline can produce is a VerificationRejection. Each
carries a stable ``error`` string, a list of human-readable ``details``
and, where a field bag existed at rejection time, the names of the keys
that were present in it. Values are never echoed back, and neither key
material nor presentation bytes may appear in detail strings.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class VerificationRejection(Exception):
    """Base class for all terminal, per-request pipeline failures."""

    error: str = "verification rejected"
    status_code: int = 400

    def __init__(
        self,
        error: Optional[str] = None,
        *,
        details: Optional[Iterable[str]] = None,
        available_keys: Optional[Iterable[str]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.details: List[str] = list(details or [])
        self.available_keys: Optional[List[str]] = (
            list(available_keys) if available_keys is not None else None
        )
        super().__init__(self.error)

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.details:
            body["details"] = self.details
        if self.available_keys is not None:
            body["availableKeys"] = self.available_keys
        return body


class InvalidRequestError(VerificationRejection):
    error = "invalid request"


class PayloadTooLargeError(VerificationRejection):
    error = "payload too large"
    status_code = 413


class ExtractionError(VerificationRejection):
    """No presentation hex (or no transfer fields) could be located."""

    error = "unable to extract presentation hex from attestation payload"


class MissingKeyError(VerificationRejection):
    """No notary public key was resolvable by any path."""

    error = "missing notary public key PEM"


class ConfigurationError(VerificationRejection):
    """The verification collaborator is absent: an integration bug."""

    error = "verifier is not configured"
    status_code = 500


class VerificationFailure(VerificationRejection):
    """The verification collaborator rejected the presentation or raised."""

    error = "local tlsn verification failed"


class IncompleteClaimError(VerificationRejection):
    error = "verifier output missing required Wise fields"


class DomainPolicyError(VerificationRejection):
    error = "sourceHost is not an allowed Wise domain"


class ConstraintMismatchError(VerificationRejection):
    error = "expected constraints mismatch"


class SelectionError(VerificationRejection):
    error = "selected transfer not found in recent transfers"
