"""
Claim normalization.

Reduces a raw field bag (attestation fields merged with verifier output)
into the canonical five-field NormalizedClaim. Field resolution is driven
entirely by the static alias tables below: for each canonical field the
first alias present in the bag wins, using exact, case-sensitive key
matches.

Normalization never fails. Absent fields stay None, and the completeness
gate in :mod:`verifier.app.checks.claim.policy` decides whether the claim
is usable.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Tuple

from verifier.app.schemas.claims import NormalizedClaim
from verifier.app.utils.payload import as_record, pick_number, pick_text

# ------------------------------------------------------------------
# Alias tables (ordered; first match wins)
# ------------------------------------------------------------------

NESTED_CLAIM_SECTIONS: Tuple[str, ...] = (
    "claimData",
    "extracted",
    "normalized",
    "data",
    "fields",
)

AMOUNT_ALIASES: Tuple[str, ...] = (
    "amount",
    "amountText",
    "transferAmount",
    "paymentAmount",
)

TIMESTAMP_ALIASES: Tuple[str, ...] = (
    "timestamp",
    "transferTimestamp",
    "createdAtTs",
    "paidAt",
    "time",
)

PAYER_REF_ALIASES: Tuple[str, ...] = (
    "payerRef",
    "payer",
    "sender",
    "payerId",
    "accountHolder",
    "recipientText",
)

TRANSFER_ID_ALIASES: Tuple[str, ...] = (
    "transferId",
    "paymentId",
    "transactionId",
    "transactionNumber",
    "transactionNo",
    "transaction_number",
    "id",
    "reference",
)

SOURCE_HOST_ALIASES: Tuple[str, ...] = (
    "sourceHost",
    "host",
    "domain",
    "originHost",
    "server_name",
)

SUCCESS_FLAGS: Tuple[str, ...] = ("verified", "ok", "success", "valid")


# ------------------------------------------------------------------
# Field bag construction
# ------------------------------------------------------------------


def build_field_view(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge the root bag with its first nested claim section.

    Nested-section fields shadow root fields of the same name. Only the
    first section that is present (not None) is considered, even if it
    turns out not to be a mapping.
    """
    nested: Mapping[str, Any] = {}
    for section in NESTED_CLAIM_SECTIONS:
        value = raw.get(section)
        if value is not None:
            nested = as_record(value)
            break

    return {**raw, **nested}


def normalize_verifier_data(raw: Any) -> NormalizedClaim:
    """Extract the canonical claim fields from a raw field bag."""
    view = build_field_view(as_record(raw))

    return NormalizedClaim(
        amount=pick_text(view, AMOUNT_ALIASES),
        timestamp=pick_number(view, TIMESTAMP_ALIASES),
        payer_ref=pick_text(view, PAYER_REF_ALIASES),
        transfer_id=pick_text(view, TRANSFER_ID_ALIASES),
        source_host=pick_text(view, SOURCE_HOST_ALIASES),
    )


def is_verifier_success(raw: Any) -> bool:
    """True when any conventional success flag is set in the raw output."""
    record = as_record(raw)
    return any(
        record.get(flag) is True or record.get(flag) == "true"
        for flag in SUCCESS_FLAGS
    )
