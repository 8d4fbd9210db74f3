"""Pydantic schemas for the Cupid Co-Pilot backend."""

from .memory import (
    ConversationMemory,
    ConversationMessage,
    NotificationRecord,
    UserPatterns,
    DuplicateCheckResult,
)
from .responses import (
    AnalysisRequest,
    AnalysisResponse,
    NotificationSummary,
    DeliveryError,
    DeliveryResult,
    PushTokenData,
)

__all__ = [
    "ConversationMemory",
    "ConversationMessage",
    "NotificationRecord",
    "UserPatterns",
    "DuplicateCheckResult",
    "AnalysisRequest",
    "AnalysisResponse",
    "NotificationSummary",
    "DeliveryError",
    "DeliveryResult",
    "PushTokenData",
]
