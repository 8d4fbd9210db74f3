"""Per-request enforcement around the notification action."""

import logging
from typing import Callable, List, Optional
from pydantic import BaseModel

from memory.policy import check_duplicate_rules, classify_notification_type
from schemas.memory import ConversationMemory, NotificationRecord
from schemas.responses import DeliveryResult
from utils.clock import now_ms

logger = logging.getLogger(__name__)

SENT = "sent"
BLOCKED = "blocked"
FAILED = "failed"


class GuardOutcome(BaseModel):
    """Result of one attempt to send a notification through the guard."""
    status: str  # "sent", "blocked" or "failed"
    notification_type: str
    reason: Optional[str] = None
    last_sent_at: Optional[int] = None
    delivery: Optional[DeliveryResult] = None
    record: Optional[NotificationRecord] = None


class NotificationRateGuard:
    """
    Rate guard bound to exactly one analysis request.

    Blocks a second notification within the request and any notification
    whose type is still in cooldown for the conversation. Create a new
    guard for every request; never share one between requests.
    """

    def __init__(
        self,
        memory: ConversationMemory,
        deliver: Callable[[str, str], DeliveryResult],
        clock: Callable[[], int] = now_ms,
        max_per_request: int = 1
    ):
        """
        Initialize rate guard.

        Args:
            memory: Memory snapshot loaded for this request
            deliver: Delivery capability taking (title, body)
            clock: Millisecond clock used for cooldowns
            max_per_request: Notifications allowed in one request
        """
        self.memory = memory
        self.deliver = deliver
        self.clock = clock
        self.max_per_request = max_per_request
        self.sent_count = 0
        self.delivered: List[NotificationRecord] = []
        self.attempts: List[GuardOutcome] = []

    def send(self, title: str, body: str) -> GuardOutcome:
        """
        Attempt to send a notification.

        Args:
            title: Notification title
            body: Notification body

        Returns:
            GuardOutcome; a blocked outcome is a normal result, not an error
        """
        notification_type = classify_notification_type(body)
        outcome = self._check(notification_type)

        if outcome is None:
            outcome = self._deliver(title, body, notification_type)

        self.attempts.append(outcome)
        return outcome

    def _check(self, notification_type: str) -> Optional[GuardOutcome]:
        """Return a blocked outcome if a rule forbids sending, else None."""
        if self.sent_count >= self.max_per_request:
            logger.info(f"Blocked {notification_type}: per-request limit reached")
            return GuardOutcome(
                status=BLOCKED,
                notification_type=notification_type,
                reason=(
                    f"Already sent {self.sent_count} notification(s) for this screenshot. "
                    f"Only {self.max_per_request} notification is allowed per analysis."
                )
            )

        # Notifications delivered earlier in this request count too
        snapshot = self.memory.model_copy(
            update={"notifications": self.memory.notifications + self.delivered}
        )
        result = check_duplicate_rules(snapshot, notification_type, now=self.clock())
        if result.is_duplicate:
            logger.info(f"Blocked {notification_type}: {result.reason}")
            return GuardOutcome(
                status=BLOCKED,
                notification_type=notification_type,
                reason=f"{result.reason}. Wait for the cooldown before repeating this advice.",
                last_sent_at=result.last_sent_at
            )

        return None

    def _deliver(self, title: str, body: str, notification_type: str) -> GuardOutcome:
        """Hand the notification to the delivery capability."""
        try:
            delivery = self.deliver(title, body)
        except ValueError as e:
            logger.error(f"Delivery rejected: {e}")
            return GuardOutcome(status=FAILED, notification_type=notification_type, reason=str(e))

        if not delivery.success:
            return GuardOutcome(
                status=FAILED,
                notification_type=notification_type,
                reason="Failed to send notifications",
                delivery=delivery
            )

        record = NotificationRecord(
            type=notification_type,
            title=title,
            body=body,
            sent_at=self.clock(),
        )
        self.sent_count += 1
        self.delivered.append(record)
        logger.info(f"Sent {notification_type} notification to {delivery.sent} device(s)")

        return GuardOutcome(
            status=SENT,
            notification_type=notification_type,
            delivery=delivery,
            record=record
        )
