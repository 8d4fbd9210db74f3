"""ReAct loop and the guarded notification tool."""

from .guard import NotificationRateGuard, GuardOutcome
from .tools import Tool, ToolResult, SendPushNotificationTool
from .loop import ReActLoop, ReActResult, ReActStep

__all__ = [
    "NotificationRateGuard",
    "GuardOutcome",
    "Tool",
    "ToolResult",
    "SendPushNotificationTool",
    "ReActLoop",
    "ReActResult",
    "ReActStep",
]
