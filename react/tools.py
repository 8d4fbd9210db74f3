"""Tools the model may call during screenshot analysis."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from pydantic import BaseModel

from .guard import NotificationRateGuard, BLOCKED, SENT

logger = logging.getLogger(__name__)


class ToolResult(BaseModel):
    """Result from tool execution."""
    tool_name: str
    success: bool
    result: Any
    error: Optional[str] = None
    blocked: bool = False  # Refused by policy rather than failed


class Tool(ABC):
    """Abstract base class for tools."""
    name: str
    description: str
    parameters: Dict[str, Any]

    @abstractmethod
    def execute(self, **kwargs) -> ToolResult:
        """Execute the tool with given arguments."""
        pass

    def get_definition(self) -> Dict:
        """Get OpenAI-compatible tool definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters
            }
        }


class SendPushNotificationTool(Tool):
    """Push a coaching notification to the user's phone, through the rate guard."""

    name = "sendPushNotification"
    description = """Sends a push notification to the user's phone with real-time dating advice.
Use this only when the screenshot shows a mistake worth interrupting for.
At most one notification is delivered per screenshot, and the same kind of
advice is refused if it was already sent in the last 5 minutes."""

    parameters = {
        "type": "object",
        "properties": {
            "title": {
                "type": "string",
                "description": "The notification title (short and attention-grabbing)"
            },
            "body": {
                "type": "string",
                "description": "The notification message body (clear and concise)"
            }
        },
        "required": ["title", "body"]
    }

    def __init__(self, guard: NotificationRateGuard):
        """
        Initialize notification tool.

        Args:
            guard: Rate guard of the current request
        """
        self.guard = guard

    def execute(self, title: Optional[str] = None, body: Optional[str] = None, **kwargs) -> ToolResult:
        """Send a notification unless the guard blocks it."""
        if not title or not body:
            return ToolResult(
                tool_name=self.name,
                success=False,
                result=None,
                error="Missing required fields: title and body are required"
            )

        try:
            outcome = self.guard.send(title, body)
        except Exception as e:
            logger.error(f"Notification tool error: {e}")
            return ToolResult(
                tool_name=self.name,
                success=False,
                result=None,
                error=str(e)
            )

        if outcome.status == BLOCKED:
            return ToolResult(
                tool_name=self.name,
                success=False,
                blocked=True,
                result={
                    "blocked": True,
                    "notification_type": outcome.notification_type,
                    "last_sent_at": outcome.last_sent_at,
                },
                error=outcome.reason
            )

        if outcome.status != SENT:
            details = None
            if outcome.delivery and outcome.delivery.errors:
                details = [e.model_dump() for e in outcome.delivery.errors]
            return ToolResult(
                tool_name=self.name,
                success=False,
                result={"details": details},
                error=outcome.reason
            )

        delivery = outcome.delivery
        return ToolResult(
            tool_name=self.name,
            success=True,
            result={
                "message": f"Successfully sent push notification to {delivery.sent} users",
                "notification_type": outcome.notification_type,
                "sent": delivery.sent,
                "total": delivery.total,
                "invalid_tokens": len(delivery.invalid_tokens or []),
            }
        )
