"""Duplicate-screenshot and notification-cooldown rules.

Pure functions over a loaded ConversationMemory. They are the fast,
pre-LLM checks that keep the coach from spamming the user.
"""

import hashlib
from typing import Optional

from schemas.memory import ConversationMemory, DuplicateCheckResult
from utils.clock import now_ms

# Same notification type may not be sent again within this window
NOTIFICATION_COOLDOWN_MS = 5 * 60 * 1000

GENERAL_ADVICE = "general-advice"

# Checked in order; the first category with a matching keyword wins.
# Cooldowns depend on this table staying stable across requests.
NOTIFICATION_TYPE_KEYWORDS = (
    ("endless-small-talk", ("small talk", "beating around the bush")),
    ("passive-planning", ("you pick", "passive", "decisiveness")),
    ("friendzone-alert", ("friendzone", "tame")),
    ("dumb-message", ("dumb", "boring message", "do not hit send")),
)


def compute_screenshot_hash(image_bytes: bytes) -> str:
    """Content hash of an uploaded screenshot (sha256 hex)."""
    return hashlib.sha256(image_bytes).hexdigest()


def is_screenshot_duplicate(memory: ConversationMemory, screenshot_hash: str) -> bool:
    """Check if a screenshot with this exact hash was already analyzed."""
    return any(m.screenshot_hash == screenshot_hash for m in memory.messages)


def check_duplicate_rules(
    memory: ConversationMemory,
    notification_type: str,
    now: Optional[int] = None
) -> DuplicateCheckResult:
    """
    Check the cooldown rule for a proposed notification.

    Args:
        memory: Loaded conversation memory
        notification_type: Classified type of the proposed notification
        now: Current time in ms (defaults to the wall clock)

    Returns:
        DuplicateCheckResult; is_duplicate is True when the same type was
        sent less than NOTIFICATION_COOLDOWN_MS ago
    """
    now = now_ms() if now is None else now

    for notification in memory.notifications:
        if notification.type != notification_type:
            continue
        if now - notification.sent_at < NOTIFICATION_COOLDOWN_MS:
            minutes_ago = (now - notification.sent_at) // 1000 // 60
            return DuplicateCheckResult(
                is_duplicate=True,
                reason=f'Same notification type "{notification_type}" sent {minutes_ago} minutes ago',
                last_sent_at=notification.sent_at
            )

    return DuplicateCheckResult(is_duplicate=False)


def classify_notification_type(body: str) -> str:
    """Categorize a notification body by case-insensitive keyword match."""
    body_lower = (body or "").lower()

    for notification_type, keywords in NOTIFICATION_TYPE_KEYWORDS:
        if any(keyword in body_lower for keyword in keywords):
            return notification_type

    return GENERAL_ADVICE
