from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
# Event Types (Finite and Versioned)
# ----------------------------------------------------------------------
class VerificationEventType(str, Enum):
    """
    Progression events emitted while a single attestation is verified.

    NOTE:
    This enum is finite and versioned.
    New entries must preserve observational semantics.
    """

    VERIFICATION_STARTED = "verification_started"
    VERIFICATION_COMPLETED = "verification_completed"
    VERIFICATION_FAILED = "verification_failed"

    NOTARY_KEY_RESOLVED = "notary_key_resolved"
    PRESENTATION_VERIFIED = "presentation_verified"
    RECENT_TRANSFERS_EXTRACTED = "recent_transfers_extracted"
    CLAIM_NORMALIZED = "claim_normalized"


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class VerificationEvent(BaseModel):
    """
    An immutable observation of a pipeline phase transition.

    Events are observational only. They never carry key material,
    presentation bytes or claim values.
    """

    event_id: UUID = Field(default_factory=uuid4)
    request_id: str = Field(..., description="The request identifier")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: VerificationEventType

    # Optional contextual metadata (mode, counts, status)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
