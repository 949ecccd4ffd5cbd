"""
Claim policy enforcement.

Three gates run in a fixed order before a claim is accepted:

1. Completeness: all five canonical fields must be present.
2. Domain policy: ``sourceHost`` must equal, or be a dot-separated
   sub-domain of, an allow-listed suffix.
3. Expected constraints: the claim must reconcile with every value the
   caller supplied.

Each gate reports every violation it finds rather than stopping at the
first one. Gates 1 and 2 raise; ``validate_expected`` returns the list so
that callers can combine it with other diagnostics.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from verifier.app.errors import (
    ConstraintMismatchError,
    DomainPolicyError,
    IncompleteClaimError,
)
from verifier.app.schemas.claims import ExpectedConstraints, NormalizedClaim
from verifier.app.utils.payload import is_unsigned_integer_text

DEFAULT_ALLOWED_HOST_SUFFIXES = "wise.com,transferwise.com"

# Thirty minutes of clock skew between caller and attested session.
TIMESTAMP_SKEW_SECONDS = 30 * 60

CANONICAL_FIELDS = (
    ("amount", "amount"),
    ("timestamp", "timestamp"),
    ("payer_ref", "payerRef"),
    ("transfer_id", "transferId"),
    ("source_host", "sourceHost"),
)


# ------------------------------------------------------------------
# Allow-list handling
# ------------------------------------------------------------------


def parse_allowed_host_suffixes(raw: Optional[str]) -> List[str]:
    """Split a comma-separated allow-list into trimmed, lowercase suffixes."""
    value = DEFAULT_ALLOWED_HOST_SUFFIXES if raw is None else raw
    return [
        item.strip().lower()
        for item in value.split(",")
        if item.strip()
    ]


def host_matches_allowed_suffix(host: Optional[str], suffixes: Iterable[str]) -> bool:
    normalized = (host or "").strip().lower()
    if not normalized:
        return False
    return any(
        normalized == suffix or normalized.endswith(f".{suffix}")
        for suffix in suffixes
    )


# ------------------------------------------------------------------
# Gates
# ------------------------------------------------------------------


def missing_fields(claim: NormalizedClaim) -> List[str]:
    """
    Wire names of canonical fields that are absent.

    A timestamp of zero counts as missing.
    """
    return [
        wire_name
        for attribute, wire_name in CANONICAL_FIELDS
        if not getattr(claim, attribute)
    ]


def check_completeness(
    claim: NormalizedClaim,
    available_keys: Optional[Sequence[str]] = None,
) -> None:
    missing = missing_fields(claim)
    if missing:
        raise IncompleteClaimError(
            details=[f"{name} missing" for name in missing],
            available_keys=available_keys,
        )


def check_domain(
    claim: NormalizedClaim,
    suffixes: Sequence[str],
    available_keys: Optional[Sequence[str]] = None,
) -> None:
    if not host_matches_allowed_suffix(claim.source_host, suffixes):
        raise DomainPolicyError(
            details=[
                f"sourceHost={claim.source_host}",
                f"allowed={','.join(suffixes)}",
            ],
            available_keys=available_keys,
        )


def validate_expected(
    expected: Optional[ExpectedConstraints],
    claim: NormalizedClaim,
) -> List[str]:
    """
    Reconcile the claim with caller-supplied constraints.

    Returns one description per violation; an empty list means accepted.
    """
    errors: List[str] = []
    if expected is None:
        return errors

    # Only pure unsigned integers are compared; formatted amounts such as
    # "10.00" or "1e6" are skipped.
    if (
        expected.amount is not None
        and is_unsigned_integer_text(expected.amount)
        and is_unsigned_integer_text(claim.amount)
        and expected.amount.strip() != (claim.amount or "").strip()
    ):
        errors.append(
            f"amount mismatch: expected={expected.amount.strip()}, "
            f"actual={claim.amount}"
        )

    if expected.timestamp is not None:
        lhs = math.trunc(expected.timestamp)
        rhs = math.trunc(claim.timestamp or 0)
        if abs(lhs - rhs) > TIMESTAMP_SKEW_SECONDS:
            errors.append(f"timestamp out of skew: expected={lhs}, actual={rhs}")

    for attribute, wire_name in (
        ("transfer_id", "transferId"),
        ("payer_ref", "payerRef"),
    ):
        wanted = (getattr(expected, attribute) or "").strip()
        actual = (getattr(claim, attribute) or "").strip()
        if wanted and actual and wanted != actual:
            errors.append(
                f"{wire_name} mismatch: expected={wanted}, actual={actual}"
            )

    return errors


def check_expected(
    expected: Optional[ExpectedConstraints],
    claim: NormalizedClaim,
    available_keys: Optional[Sequence[str]] = None,
) -> None:
    errors = validate_expected(expected, claim)
    if errors:
        raise ConstraintMismatchError(
            details=errors,
            available_keys=available_keys,
        )


def enforce_claim_policy(
    claim: NormalizedClaim,
    *,
    suffixes: Sequence[str],
    expected: Optional[ExpectedConstraints] = None,
    available_keys: Optional[Sequence[str]] = None,
) -> NormalizedClaim:
    """Run all gates in order; return the claim once it is accepted."""
    check_completeness(claim, available_keys)
    check_domain(claim, suffixes, available_keys)
    check_expected(expected, claim, available_keys)
    return claim
