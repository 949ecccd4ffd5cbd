from __future__ import annotations

import logging
from typing import Protocol

from verifier.app.events.models import VerificationEvent

logger = logging.getLogger("verifier.events")


class VerificationEventEmitter(Protocol):
    """
    Interface for broadcasting verification observations.

    Implementations must be:
    - non-blocking (or minimally blocking)
    - observational only
    """

    async def emit(self, event: VerificationEvent) -> None:
        ...


class NullEventEmitter:
    """A safe no-op emitter, used when nobody is listening."""

    async def emit(self, event: VerificationEvent) -> None:
        return


class LoggingEventEmitter:
    """Forward events to the ``verifier.events`` logger at DEBUG level."""

    async def emit(self, event: VerificationEvent) -> None:
        logger.debug(
            event.event_type.value,
            extra={
                "request_id": event.request_id,
                "details": event.details or {},
            },
        )
