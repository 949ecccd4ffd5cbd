"""
Claim schemas.

Defines the request-scoped records that flow through the verification
pipeline:

- VerificationResult: reduced output of the verification collaborator
- NormalizedClaim: the canonical five-field transfer claim
- ExpectedConstraints: caller-supplied values the claim must reconcile with
- RecentTransfer: best-effort transfer rows mined from transcripts
- SelectedTransfer: the caller's pick among recent transfers

Wire names are camelCase (``payerRef``, ``transferId``, ``sourceHost``)
to stay compatible with existing clients; Python attributes are
snake_case. All models are immutable once constructed.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from verifier.app.utils.payload import as_record, to_finite_number

Number = Union[int, float]


_CLAIM_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    populate_by_name=True,
)


# ---------------------------------------------------------------------------
# Verification collaborator output
# ---------------------------------------------------------------------------


class VerificationResult(BaseModel):
    """
    Uniform view of a verified presentation.

    Produced once per request by the verification orchestrator and
    immutable afterwards.
    """

    presentation_hex: str = Field(
        ...,
        alias="presentationHex",
        description="Lowercase hex of the presentation bytes, no 0x prefix",
    )

    sent: str = Field(
        "",
        description="Request transcript as reported by the verifier",
    )

    recv: str = Field(
        "",
        description="Response transcript as reported by the verifier",
    )

    server_name: Optional[str] = Field(
        None,
        alias="serverName",
        description="TLS server name the presentation was issued for",
    )

    timestamp: Optional[int] = Field(
        None,
        description="Session time in integer seconds since the epoch",
    )

    model_config = _CLAIM_CONFIG


# ---------------------------------------------------------------------------
# Canonical claim
# ---------------------------------------------------------------------------


class NormalizedClaim(BaseModel):
    """
    Canonical transfer claim.

    Normalization never fails; any field may be absent here. Presence is
    enforced afterwards by the completeness gate, and only a complete
    claim is hashed or returned.
    """

    amount: Optional[str] = Field(
        None,
        description="Transfer amount as decimal text",
    )

    timestamp: Optional[Number] = Field(
        None,
        description="Transfer time in seconds since the epoch",
    )

    payer_ref: Optional[str] = Field(
        None,
        alias="payerRef",
        description="Payer reference (name, account holder, or id)",
    )

    transfer_id: Optional[str] = Field(
        None,
        alias="transferId",
        description="Provider transfer identifier",
    )

    source_host: Optional[str] = Field(
        None,
        alias="sourceHost",
        description="Host the transcript was captured from",
    )

    model_config = _CLAIM_CONFIG

    def as_response(self) -> Dict[str, Any]:
        """Render the claim for the HTTP response with an integer timestamp."""
        return {
            "amount": self.amount,
            "timestamp": (
                math.trunc(self.timestamp) if self.timestamp is not None else None
            ),
            "payerRef": self.payer_ref,
            "transferId": self.transfer_id,
            "sourceHost": self.source_host,
        }


class ExpectedConstraints(BaseModel):
    """
    Caller-supplied constraints. Unset fields are not checked.
    """

    amount: Optional[str] = None
    timestamp: Optional[Number] = None
    transfer_id: Optional[str] = Field(None, alias="transferId")
    payer_ref: Optional[str] = Field(None, alias="payerRef")

    model_config = _CLAIM_CONFIG

    @classmethod
    def from_payload(cls, value: Any) -> "ExpectedConstraints":
        """
        Build constraints from untrusted JSON.

        Values of the wrong type are dropped and behave as "not supplied".
        """
        record = as_record(value)

        def text(key: str) -> Optional[str]:
            item = record.get(key)
            return item if isinstance(item, str) else None

        # Numeric strings are not accepted here, only JSON numbers.
        timestamp = record.get("timestamp")
        if isinstance(timestamp, (int, float)):
            timestamp = to_finite_number(timestamp)
        else:
            timestamp = None

        return cls(
            amount=text("amount"),
            timestamp=timestamp,
            transfer_id=text("transferId"),
            payer_ref=text("payerRef"),
        )


# ---------------------------------------------------------------------------
# Recent transfers
# ---------------------------------------------------------------------------


class RecentTransfer(BaseModel):
    """
    A non-authoritative transfer row recovered from attestation fields or
    transcript text. Offered for cross-referencing only.
    """

    amount: Optional[str] = None
    timestamp: Optional[int] = None
    payer_ref: Optional[str] = Field(None, alias="payerRef")
    transfer_id: Optional[str] = Field(None, alias="transferId")
    status: Optional[str] = None
    currency: Optional[str] = None

    model_config = _CLAIM_CONFIG


class SelectedTransfer(BaseModel):
    """The caller's pick among recent transfers, parsed leniently."""

    amount: Optional[str] = None
    timestamp: Optional[Number] = None
    payer_ref: Optional[str] = Field(None, alias="payerRef")
    transfer_id: Optional[str] = Field(None, alias="transferId")

    model_config = _CLAIM_CONFIG

    @classmethod
    def from_payload(cls, value: Any) -> Optional["SelectedTransfer"]:
        if not isinstance(value, dict) or not value:
            return None

        def text(key: str) -> Optional[str]:
            item = value.get(key)
            if item is None or isinstance(item, (dict, list)):
                return None
            rendered = str(item).strip()
            return rendered or None

        return cls(
            amount=text("amount"),
            timestamp=to_finite_number(value.get("timestamp")),
            transfer_id=text("transferId"),
            payer_ref=text("payerRef"),
        )
