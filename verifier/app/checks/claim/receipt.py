"""
Receipt commitment.

Binds an accepted claim to the attestation it was derived from. The
receipt hash is a collision-resistant commitment, not an authenticity
proof: anyone holding the claim and the attestation can recompute it.
"""

from __future__ import annotations

import math
from typing import Any

from verifier.app.schemas.claims import NormalizedClaim
from verifier.app.utils.hashing import serialize_payload, sha256_hex

RECEIPT_DOMAIN = "wise"


def build_wise_receipt_hash(claim: NormalizedClaim, attestation: Any) -> str:
    """
    Compute the receipt hash for an accepted claim.

    Layout::

        sha256("wise|<host>|<transferId>|<payerRef>|<amount>|<ts>|<attDigest>")

    where ``attDigest`` is the ``0x``-prefixed SHA-256 of the compact JSON
    serialization of ``attestation`` and ``ts`` is the integer-truncated
    timestamp. The claim must be complete.
    """
    if claim.timestamp is None:
        raise ValueError("cannot commit to a claim without a timestamp")

    attestation_digest = sha256_hex(serialize_payload(attestation))

    return sha256_hex(
        "|".join(
            [
                RECEIPT_DOMAIN,
                str(claim.source_host),
                str(claim.transfer_id),
                str(claim.payer_ref),
                str(claim.amount),
                str(math.trunc(claim.timestamp)),
                attestation_digest,
            ]
        )
    )
