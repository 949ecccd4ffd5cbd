"""
HTTP contract for the attestation verification endpoint.

The request body is untrusted and only loosely typed: the attestation is
an arbitrary JSON tree, and the optional sections are reparsed leniently
by the coordinator. The response shape is fixed.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from verifier.app.schemas.claims import RecentTransfer


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------

STATUS_OK_LOCAL = "ok-local"
STATUS_OK_BROWSER_CAPTURE = "ok-browser-capture"

BROWSER_CAPTURE_KIND = "wise_browser_capture_v1"
BROWSER_CAPTURE_WARNING = (
    "browser capture mode: TLS cryptographic verification is bypassed"
)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class VerifyRequest(BaseModel):
    """Body of ``POST /verify-wise-attestation``."""

    attestation: Any = Field(
        None,
        description="Attestation payload in any supported dialect",
    )

    expected: Any = Field(
        None,
        description="Optional constraints the normalized claim must satisfy",
    )

    selected_transfer: Any = Field(
        None,
        alias="selectedTransfer",
        description="Optional transfer the caller picked from recent transfers",
    )

    recent_count: Any = Field(
        None,
        alias="recentCount",
        description="Number of recent transfers to return (clamped to 1..10)",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------


class VerifierStatus(BaseModel):
    """Diagnostic block describing how the claim was obtained."""

    status: str
    available_keys: List[str] = Field(
        default_factory=list,
        alias="availableKeys",
    )
    selected_matched: bool = Field(False, alias="selectedMatched")
    server_name: Optional[str] = Field(None, alias="serverName")
    tls_verified: Optional[bool] = Field(None, alias="tlsVerified")
    warning: Optional[str] = None

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class VerifyResponse(BaseModel):
    """Successful verification outcome."""

    verified: bool = True
    wise_receipt_hash: str = Field(..., alias="wiseReceiptHash")
    normalized: Dict[str, Any]
    recent_transfers: List[RecentTransfer] = Field(
        default_factory=list,
        alias="recentTransfers",
    )
    verifier: VerifierStatus

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        body = self.model_dump(by_alias=True, mode="json")
        # Mode-specific diagnostics are omitted rather than sent as null.
        verifier = body["verifier"]
        if verifier.get("tlsVerified") is None:
            verifier.pop("tlsVerified", None)
        else:
            verifier.pop("serverName", None)
        if verifier.get("warning") is None:
            verifier.pop("warning", None)
        return body


class ErrorResponse(BaseModel):
    """Structured rejection body."""

    error: str
    details: Optional[List[str]] = None
    available_keys: Optional[List[str]] = Field(None, alias="availableKeys")

    model_config = ConfigDict(frozen=True, populate_by_name=True)
