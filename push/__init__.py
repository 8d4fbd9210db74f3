"""Push notification delivery and token registration."""

from .token_store import PushTokenStore
from .expo_client import ExpoPushClient, NotificationError, is_expo_push_token, SEND_TO_ALL

__all__ = [
    "PushTokenStore",
    "ExpoPushClient",
    "NotificationError",
    "is_expo_push_token",
    "SEND_TO_ALL",
]
