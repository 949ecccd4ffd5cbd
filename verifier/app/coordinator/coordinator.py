"""
Verification coordinator.

Runs one attestation through the pipeline and produces either a
VerifyResponse or a VerificationRejection.

Execution order:
    1. Request shape checks
    2. Mode selection (browser capture vs. local TLSN verification)
    3. Notary key resolution and presentation verification (local mode)
    4. Recent-transfer recovery and selected-transfer matching
    5. Field bag assembly and claim normalization
    6. Completeness, domain and expected-constraint gates
    7. Receipt commitment

The coordinator performs no I/O of its own beyond the notary resolver and
the verification collaborator it is given. It never retries. Every
rejection is terminal for the request.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from verifier.app.checks.claim.normalization import normalize_verifier_data
from verifier.app.checks.claim.policy import (
    enforce_claim_policy,
    parse_allowed_host_suffixes,
)
from verifier.app.checks.claim.receipt import build_wise_receipt_hash
from verifier.app.checks.transcript.recent_transfers import (
    DEFAULT_RECENT_COUNT,
    clamp_recent_count,
    extract_recent_transfers,
    find_matching_recent_transfer,
)
from verifier.app.coordinator.local_verification import (
    VerifyFunction,
    verify_presentation_locally,
)
from verifier.app.errors import (
    ConfigurationError,
    InvalidRequestError,
    MissingKeyError,
    SelectionError,
    VerificationRejection,
)
from verifier.app.events import (
    NullEventEmitter,
    VerificationEvent,
    VerificationEventEmitter,
    VerificationEventType,
)
from verifier.app.schemas.claims import (
    ExpectedConstraints,
    NormalizedClaim,
    RecentTransfer,
    SelectedTransfer,
)
from verifier.app.schemas.verification_response import (
    BROWSER_CAPTURE_KIND,
    BROWSER_CAPTURE_WARNING,
    STATUS_OK_BROWSER_CAPTURE,
    STATUS_OK_LOCAL,
    VerifierStatus,
    VerifyRequest,
    VerifyResponse,
)
from verifier.app.services.notary_client import NotaryKeyResolver
from verifier.app.utils.payload import as_record

logger = logging.getLogger("verifier.coordinator")

DEFAULT_SOURCE_HOST = "wise.com"


def is_browser_capture_attestation(attestation: Any) -> bool:
    return as_record(attestation).get("kind") == BROWSER_CAPTURE_KIND


def _first_present(*values: Any) -> Any:
    """Return the first value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


class VerificationCoordinator:
    """Wires the pipeline stages together for a single request at a time."""

    def __init__(
        self,
        *,
        notary_resolver: Optional[NotaryKeyResolver],
        verify_fn: Optional[VerifyFunction],
        allowed_host_suffixes: Optional[Sequence[str]] = None,
        allow_browser_capture: bool = True,
        default_recent_count: int = DEFAULT_RECENT_COUNT,
    ) -> None:
        self._notary_resolver = notary_resolver
        self._verify_fn = verify_fn
        self._allowed_host_suffixes = list(
            allowed_host_suffixes
            if allowed_host_suffixes is not None
            else parse_allowed_host_suffixes(None)
        )
        self._allow_browser_capture = allow_browser_capture
        self._default_recent_count = default_recent_count

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_verification(
        self,
        request: VerifyRequest,
        *,
        request_id: str,
        emitter: Optional[VerificationEventEmitter] = None,
    ) -> VerifyResponse:
        emitter = emitter or NullEventEmitter()

        browser_capture = is_browser_capture_attestation(request.attestation)
        mode = "browser_capture" if browser_capture else "local"

        await self._emit(
            emitter,
            request_id,
            VerificationEventType.VERIFICATION_STARTED,
            {"mode": mode},
        )

        try:
            if not request.attestation:
                raise InvalidRequestError("attestation is required")

            if browser_capture:
                response = await self._run_browser_capture(
                    request, request_id=request_id, emitter=emitter
                )
            else:
                response = await self._run_local(
                    request, request_id=request_id, emitter=emitter
                )
        except VerificationRejection as exc:
            logger.info(
                "verification_rejected",
                extra={
                    "request_id": request_id,
                    "mode": mode,
                    "error": exc.error,
                    "status_code": exc.status_code,
                },
            )
            await self._emit(
                emitter,
                request_id,
                VerificationEventType.VERIFICATION_FAILED,
                {"error": exc.error, "status_code": exc.status_code},
            )
            raise

        logger.info(
            "verification_accepted",
            extra={
                "request_id": request_id,
                "mode": mode,
                "recent_transfers": len(response.recent_transfers),
            },
        )
        await self._emit(
            emitter,
            request_id,
            VerificationEventType.VERIFICATION_COMPLETED,
            {"status": response.verifier.status},
        )
        return response

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    async def _run_browser_capture(
        self,
        request: VerifyRequest,
        *,
        request_id: str,
        emitter: VerificationEventEmitter,
    ) -> VerifyResponse:
        """
        Browser-capture attestations carry transfer rows but no TLS
        presentation. The claim is assembled from the selected (or first)
        row and reported with ``tlsVerified: false``.
        """
        if not self._allow_browser_capture:
            raise ConfigurationError(
                "browser capture attestations are disabled",
                status_code=400,
            )

        attestation = as_record(request.attestation)
        recent, matched = await self._recent_and_selection(
            request, attestation, "", request_id=request_id, emitter=emitter
        )

        # A selection that did not match has already been rejected.
        row: Dict[str, Any]
        if matched is not None:
            row = matched.model_dump()
        elif recent:
            # Without a selection the first captured row outranks root-level
            # claim fields, which only fill what the row lacks.
            row = recent[0].model_dump()
        else:
            row = {}

        raw: Dict[str, Any] = {
            **attestation,
            "amount": _first_present(row.get("amount"), attestation.get("amount")),
            "timestamp": _first_present(
                row.get("timestamp"), attestation.get("timestamp")
            ),
            "payerRef": _first_present(
                row.get("payer_ref"), attestation.get("payerRef")
            ),
            "transferId": _first_present(
                row.get("transfer_id"), attestation.get("transferId")
            ),
            "sourceHost": _first_present(
                attestation.get("sourceHost"), DEFAULT_SOURCE_HOST
            ),
            "verified": True,
        }

        claim, available_keys = await self._accept_claim(
            raw, request, request_id=request_id, emitter=emitter
        )

        return VerifyResponse(
            wise_receipt_hash=build_wise_receipt_hash(claim, request.attestation),
            normalized=claim.as_response(),
            recent_transfers=recent,
            verifier=VerifierStatus(
                status=STATUS_OK_BROWSER_CAPTURE,
                available_keys=available_keys,
                selected_matched=matched is not None,
                tls_verified=False,
                warning=BROWSER_CAPTURE_WARNING,
            ),
        )

    async def _run_local(
        self,
        request: VerifyRequest,
        *,
        request_id: str,
        emitter: VerificationEventEmitter,
    ) -> VerifyResponse:
        if self._notary_resolver is None:
            raise ConfigurationError(details=["notary resolver is not configured"])

        notary_public_key_pem = await self._notary_resolver.resolve(
            request.attestation
        )
        if not notary_public_key_pem:
            raise MissingKeyError()

        await self._emit(
            emitter, request_id, VerificationEventType.NOTARY_KEY_RESOLVED
        )

        verification = await verify_presentation_locally(
            attestation=request.attestation,
            notary_public_key_pem=notary_public_key_pem,
            verify_fn=self._verify_fn,
        )

        await self._emit(
            emitter,
            request_id,
            VerificationEventType.PRESENTATION_VERIFIED,
            {"server_name": verification.server_name},
        )

        attestation = as_record(request.attestation)
        recent, matched = await self._recent_and_selection(
            request,
            attestation,
            verification.recv,
            request_id=request_id,
            emitter=emitter,
        )

        base_timestamp = _first_present(
            verification.timestamp, attestation.get("timestamp")
        )

        raw: Dict[str, Any] = dict(attestation)
        if matched is not None:
            raw.update(
                {
                    "amount": _first_present(matched.amount, attestation.get("amount")),
                    "payerRef": _first_present(
                        matched.payer_ref, attestation.get("payerRef")
                    ),
                    "transferId": _first_present(
                        matched.transfer_id, attestation.get("transferId")
                    ),
                }
            )
        raw.update(
            {
                "sourceHost": _first_present(
                    verification.server_name,
                    attestation.get("sourceHost"),
                    attestation.get("host"),
                ),
                "timestamp": _first_present(
                    matched.timestamp if matched is not None else None,
                    base_timestamp,
                ),
                "verified": True,
                "sent": verification.sent,
                "recv": verification.recv,
            }
        )

        claim, available_keys = await self._accept_claim(
            raw, request, request_id=request_id, emitter=emitter
        )

        return VerifyResponse(
            wise_receipt_hash=build_wise_receipt_hash(claim, request.attestation),
            normalized=claim.as_response(),
            recent_transfers=recent,
            verifier=VerifierStatus(
                status=STATUS_OK_LOCAL,
                available_keys=available_keys,
                selected_matched=matched is not None,
                server_name=verification.server_name,
            ),
        )

    # ------------------------------------------------------------------
    # Shared stages
    # ------------------------------------------------------------------

    async def _recent_and_selection(
        self,
        request: VerifyRequest,
        attestation: Dict[str, Any],
        transcript_text: str,
        *,
        request_id: str,
        emitter: VerificationEventEmitter,
    ) -> Tuple[List[RecentTransfer], Optional[RecentTransfer]]:
        recent_count = clamp_recent_count(
            request.recent_count, default=self._default_recent_count
        )
        recent = extract_recent_transfers(attestation, transcript_text, recent_count)

        selected = SelectedTransfer.from_payload(request.selected_transfer)
        matched = find_matching_recent_transfer(recent, selected)

        await self._emit(
            emitter,
            request_id,
            VerificationEventType.RECENT_TRANSFERS_EXTRACTED,
            {"count": len(recent), "selected_matched": matched is not None},
        )

        if selected is not None and matched is None:
            raise SelectionError()

        return recent, matched

    async def _accept_claim(
        self,
        raw: Dict[str, Any],
        request: VerifyRequest,
        *,
        request_id: str,
        emitter: VerificationEventEmitter,
    ) -> Tuple[NormalizedClaim, List[str]]:
        available_keys = list(raw.keys())
        claim = normalize_verifier_data(raw)

        await self._emit(
            emitter,
            request_id,
            VerificationEventType.CLAIM_NORMALIZED,
            {"available_keys": available_keys},
        )

        enforce_claim_policy(
            claim,
            suffixes=self._allowed_host_suffixes,
            expected=ExpectedConstraints.from_payload(request.expected),
            available_keys=available_keys,
        )
        return claim, available_keys

    @staticmethod
    async def _emit(
        emitter: VerificationEventEmitter,
        request_id: str,
        event_type: VerificationEventType,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            await emitter.emit(
                VerificationEvent(
                    request_id=request_id,
                    event_type=event_type,
                    details=details,
                )
            )
        except Exception:
            logger.warning(
                "event_emission_failed",
                extra={"request_id": request_id, "event_type": event_type.value},
            )
