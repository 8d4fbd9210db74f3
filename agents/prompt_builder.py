"""Coach policy prompt and the memory-aware system prompt builder."""

from typing import Optional

from memory.policy import NOTIFICATION_COOLDOWN_MS
from schemas.memory import ConversationMemory
from utils.clock import now_ms

SYSTEM_PROMPT = """
you are cupid co-pilot, the ai wingman that lives inside dating apps.
your only job is to keep the user out of the pen-pal zone and get them on a real date.
your rules:
    1 all lowercase, always. casual vibe, sharp advice.
    2 be brutally honest. a lazy opener is lazy. a boring chat is boring. say why.
    3 momentum is everything. push the user to ask for the date within 5-10 good messages.
    4 'hey' is a guaranteed fail. openers must prove they read the profile.
    5 flirting is mandatory. call out 'buddy talk' before the friendzone sets in.
    6 decisiveness is hot. always push for a specific plan: what, where, when.
    7 no ghosting. if the date was bad, help the user send a clear, respectful 'no thanks'.
how you act:
    • you give real-time advice with the sendPushNotification tool.
    • only use the tool when the screenshot shows the user actively chatting in a dating app.
your playbook:
    • endless small talk: 3+ messages of back-and-forth small talk ("how's work", "cool") going nowhere.
      notify: "yo quit beating around the bush. 🥱 ask a real question or ask them out."
    • passive planning: the user types "idk", "whatever you want", "you pick", "i'm easy".
      notify: "stop. 🛑 'you pick' is weak. decisiveness is hot. pick a specific place and time."
    • friendzone danger: 5+ messages, totally tame, no compliments, no romantic intent.
      notify: "🚨 friendzone alert 🚨 this chat is so tame you're about to be their new best bud. flirt now."
    • dumb message typed: the user is about to send "hey", "k", "lol" or "cool".
      notify: "dude, no. 🗑️ do not hit send on that boring message. put in 10% more effort."
always finish with a short plain-text assessment of what you see, even when you send nothing.
""".strip()

USER_PROMPT = """Based on what you see in the given image, choose the appropriate action according to the system prompt.
The image is a live preview of what the user is doing on their phone; help them win over the person they are chatting with.
You can reach the user with the sendPushNotification tool."""


class MemoryPromptBuilder:
    """Renders conversation memory into the system prompt."""

    # Configuration
    RECENT_MESSAGES = 5

    def render(
        self,
        base_prompt: str,
        memory: ConversationMemory,
        now: Optional[int] = None
    ) -> str:
        """
        Append conversation context and anti-spam guidance to a prompt.

        Args:
            base_prompt: Fixed policy prompt
            memory: Conversation memory for this request
            now: Current time in ms (defaults to the wall clock)

        Returns:
            base_prompt unchanged for a conversation without history,
            otherwise base_prompt followed by the context block
        """
        if not memory.messages:
            return base_prompt

        now = now_ms() if now is None else now
        parts = [base_prompt, "", "=== Conversation Memory ==="]

        recent = memory.messages[-self.RECENT_MESSAGES:]
        parts.append(f"Recent analyses ({len(recent)} of {len(memory.messages)}):")
        for message in recent:
            parts.append(
                f"- frame {message.frame_number}, {format_elapsed(now, message.timestamp)}: "
                f"{message.ai_analysis}"
            )

        parts.append("")
        if memory.notifications:
            parts.append("Notifications already sent in this conversation:")
            for notification in memory.notifications:
                parts.append(
                    f"- [{notification.type}] {format_elapsed(now, notification.sent_at)}: "
                    f'"{notification.title}: {notification.body}" '
                    f"(triggered by: {notification.trigger_reason or 'n/a'})"
                )
        else:
            parts.append("Notifications already sent in this conversation: none")

        patterns = memory.patterns
        parts.append("")
        parts.append(f"User state: {patterns.current_state}")
        parts.append(f"Common mistakes: {', '.join(patterns.common_mistakes) or 'none yet'}")
        parts.append(f"Improvements: {', '.join(patterns.improvements) or 'none yet'}")
        parts.append("=== End Conversation Memory ===")
        parts.append("")
        parts.append(self._guidance_block())

        return "\n".join(parts)

    def _guidance_block(self) -> str:
        """Instructions for using the memory without spamming the user."""
        cooldown_minutes = NOTIFICATION_COOLDOWN_MS // 60000
        return f"""=== How To Use This Memory ===
hard rules (enforced by the tool, attempts that break them are refused):
- at most one notification per screenshot.
- the same kind of advice is never repeated within {cooldown_minutes} minutes.
silence is the default. send a notification only when the screenshot shows a new,
clear mistake that the earlier notifications did not already cover. stay silent when:
- the user already fixed the problem you warned about (they are self-correcting).
- the user is still typing and the message is not finished yet.
- the user state is "improving" and nothing got worse.
- the screenshot shows nothing new since the last analysis.
examples:
- you sent a friendzone alert 3 minutes ago and the chat is still tame -> stay silent, it is too soon.
- you sent a passive-planning alert and now the user proposed "tacos on friday at 7?" -> stay silent, they listened.
- no notifications yet and the user typed "you pick" while making plans -> send the passive-planning notification.
- you warned about small talk 20 minutes ago and they drifted back to "how's work" -> send, the mistake is back.
=== End How To Use This Memory ==="""


def format_elapsed(now: int, timestamp: int) -> str:
    """Human-readable time since timestamp (both in ms)."""
    minutes = max(0, now - timestamp) // 60000
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"
    return f"{minutes // 60}h {minutes % 60}m ago"
