"""Tests for the per-request notification rate guard."""

from unittest.mock import Mock

from react.guard import BLOCKED, FAILED, SENT, NotificationRateGuard
from schemas.memory import ConversationMemory, NotificationRecord
from schemas.responses import DeliveryError, DeliveryResult

NOW = 1_700_000_000_000
MINUTE = 60 * 1000

PASSIVE_BODY = "stop. 'you pick' is weak. decisiveness is hot."
FRIENDZONE_BODY = "friendzone alert. flirt now."


def delivered(sent: int = 1) -> DeliveryResult:
    return DeliveryResult(
        success=sent > 0,
        sent=sent,
        total=1,
        tickets=[{"status": "ok", "id": "ticket-1"}] if sent else [],
        errors=None if sent else [DeliveryError(token="ExponentPushToken[x]", message="DeviceNotRegistered")],
    )


def make_memory(*notifications: NotificationRecord) -> ConversationMemory:
    return ConversationMemory(
        conversation_id="conv_test",
        device_id="device-123",
        started_at=NOW - 30 * MINUTE,
        last_updated_at=NOW - MINUTE,
        notifications=list(notifications),
    )


class TestNotificationRateGuard:
    """Test per-request and cooldown enforcement."""

    def setup_method(self):
        """Set up test fixtures."""
        self.deliver = Mock(return_value=delivered())
        self.clock = lambda: NOW

    def make_guard(self, memory=None, **kwargs) -> NotificationRateGuard:
        return NotificationRateGuard(
            memory=memory or make_memory(),
            deliver=self.deliver,
            clock=self.clock,
            **kwargs
        )

    def test_first_notification_is_sent(self):
        """Test an allowed notification is delivered and recorded."""
        guard = self.make_guard()

        outcome = guard.send("stop", PASSIVE_BODY)

        assert outcome.status == SENT
        assert outcome.notification_type == "passive-planning"
        assert outcome.record.sent_at == NOW
        assert outcome.record.title == "stop"
        assert guard.sent_count == 1
        assert guard.delivered == [outcome.record]
        self.deliver.assert_called_once_with("stop", PASSIVE_BODY)

    def test_second_notification_in_request_blocked(self):
        """Test only one notification goes out per request."""
        guard = self.make_guard()
        guard.send("stop", PASSIVE_BODY)

        outcome = guard.send("alert", FRIENDZONE_BODY)

        assert outcome.status == BLOCKED
        assert "Already sent 1 notification(s)" in outcome.reason
        assert self.deliver.call_count == 1
        assert guard.sent_count == 1
        assert len(guard.attempts) == 2

    def test_cooldown_blocks_same_type(self):
        """Test a type sent two minutes ago is refused."""
        sent_at = NOW - 2 * MINUTE
        memory = make_memory(NotificationRecord(
            type="passive-planning", title="stop", body=PASSIVE_BODY, sent_at=sent_at
        ))
        guard = self.make_guard(memory)

        outcome = guard.send("stop", PASSIVE_BODY)

        assert outcome.status == BLOCKED
        assert outcome.last_sent_at == sent_at
        assert outcome.reason.startswith('Same notification type "passive-planning" sent 2 minutes ago')
        assert "Wait for the cooldown" in outcome.reason
        self.deliver.assert_not_called()
        assert guard.sent_count == 0

    def test_cooldown_allows_other_type(self):
        """Test a recent notification of another type does not block."""
        memory = make_memory(NotificationRecord(
            type="passive-planning", title="stop", body=PASSIVE_BODY, sent_at=NOW - MINUTE
        ))
        guard = self.make_guard(memory)

        assert guard.send("alert", FRIENDZONE_BODY).status == SENT

    def test_expired_cooldown_allows_same_type(self):
        """Test the same type is allowed again after six minutes."""
        memory = make_memory(NotificationRecord(
            type="passive-planning", title="stop", body=PASSIVE_BODY, sent_at=NOW - 6 * MINUTE
        ))
        assert self.make_guard(memory).send("stop", PASSIVE_BODY).status == SENT

    def test_same_request_sends_count_for_cooldown(self):
        """Test notifications delivered earlier in the request are cooled down."""
        guard = self.make_guard(max_per_request=2)

        assert guard.send("stop", PASSIVE_BODY).status == SENT
        second = guard.send("stop again", PASSIVE_BODY)

        assert second.status == BLOCKED
        assert "Same notification type" in second.reason
        assert guard.send("alert", FRIENDZONE_BODY).status == SENT
        assert guard.sent_count == 2

    def test_failed_delivery_not_counted(self):
        """Test an undelivered notification neither counts nor is recorded."""
        self.deliver.side_effect = [delivered(sent=0), delivered()]
        guard = self.make_guard()

        failed = guard.send("stop", PASSIVE_BODY)
        retried = guard.send("stop", PASSIVE_BODY)

        assert failed.status == FAILED
        assert failed.reason == "Failed to send notifications"
        assert failed.delivery.errors[0].message == "DeviceNotRegistered"
        assert retried.status == SENT
        assert len(guard.delivered) == 1

    def test_rejected_delivery(self):
        """Test a delivery that cannot be attempted reports failure."""
        self.deliver.side_effect = ValueError("No tokens found in storage")
        guard = self.make_guard()

        outcome = guard.send("stop", PASSIVE_BODY)

        assert outcome.status == FAILED
        assert outcome.reason == "No tokens found in storage"
        assert guard.delivered == []

    def test_guard_does_not_mutate_memory(self):
        """Test the loaded snapshot is left untouched."""
        memory = make_memory()
        guard = self.make_guard(memory)

        guard.send("stop", PASSIVE_BODY)

        assert memory.notifications == []
