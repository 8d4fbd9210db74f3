"""Request and response schemas for the analysis and push endpoints."""

from typing import Any, Optional
from pydantic import Field

from .memory import CamelModel


class AnalysisRequest(CamelModel):
    """Everything the orchestrator needs from one screenshot upload."""
    image: bytes
    timestamp: Optional[int] = None  # Client timestamp (ms); server time if absent
    frame_number: int = 0
    format: Optional[str] = None
    media_type: str = "image/jpeg"
    conversation_id: Optional[str] = None
    device_id: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)


class NotificationSummary(CamelModel):
    """A delivered notification as reported back to the client."""
    tool: str


class AnalysisResponse(CamelModel):
    """Result of one analysis request."""
    success: bool = True
    conversation_id: str
    device_id: str
    frame_number: int
    timestamp: int
    description: Optional[str] = None
    tool_calls: Optional[list[NotificationSummary]] = None
    skipped: bool = False
    reason: Optional[str] = None


class DeliveryError(CamelModel):
    """A per-recipient delivery failure."""
    token: Optional[str] = None
    message: str


class DeliveryResult(CamelModel):
    """Best-effort outcome of a push send."""
    success: bool
    sent: int
    total: int
    errors: Optional[list[DeliveryError]] = None
    invalid_tokens: Optional[list[str]] = None
    tickets: list[dict[str, Any]] = Field(default_factory=list)


class PushTokenData(CamelModel):
    """A registered device push token."""
    token: str
    device_id: Optional[str] = None
    device_name: Optional[str] = None
    platform: str = "unknown"
    timestamp: Optional[int] = None
