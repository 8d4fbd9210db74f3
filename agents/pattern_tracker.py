"""Rule-based tracking of the user's recurring mistakes."""

from collections import Counter

from memory.policy import GENERAL_ADVICE
from schemas.memory import ConversationMemory, UserPatterns


class PatternTracker:
    """
    Derives UserPatterns from a conversation's notification history.

    A mistake counts as improved once IMPROVEMENT_WINDOW screenshots were
    analysed after its latest notification without it being flagged again.
    Message timestamps come from the client and sentAt from the server, so
    large clock skew shifts the window.
    """

    IMPROVEMENT_WINDOW = 3

    def derive(self, memory: ConversationMemory) -> UserPatterns:
        """Compute patterns for the current state of a memory record."""
        notifications = memory.notifications
        if not notifications:
            return UserPatterns(current_state="new")

        counts = Counter()
        last_sent = {}
        for notification in notifications:
            last_sent[notification.type] = max(
                notification.sent_at, last_sent.get(notification.type, 0)
            )
            if notification.type != GENERAL_ADVICE:
                counts[notification.type] += 1

        common_mistakes = sorted(counts, key=lambda t: (-counts[t], -last_sent[t]))
        improvements = [
            t for t in common_mistakes
            if self._messages_since(memory, last_sent[t]) >= self.IMPROVEMENT_WINDOW
        ]

        latest = notifications[-1]
        if self._messages_since(memory, latest.sent_at) >= self.IMPROVEMENT_WINDOW:
            state = "improving"
        elif sum(1 for n in notifications if n.type == latest.type) > 1:
            state = "regressing"
        else:
            state = "stagnant"

        return UserPatterns(
            common_mistakes=common_mistakes,
            improvements=improvements,
            current_state=state
        )

    def _messages_since(self, memory: ConversationMemory, timestamp: int) -> int:
        """Number of analysed screenshots newer than timestamp."""
        return sum(1 for m in memory.messages if m.timestamp > timestamp)
