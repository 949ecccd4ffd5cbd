from .models import VerificationEvent, VerificationEventType
from .emitter import LoggingEventEmitter, NullEventEmitter, VerificationEventEmitter

__all__ = [
    "VerificationEvent",
    "VerificationEventType",
    "VerificationEventEmitter",
    "NullEventEmitter",
    "LoggingEventEmitter",
]
