"""Conversation memory schemas.

Attributes are snake_case in Python and camelCase on the wire (storage and
HTTP), so stored records keep the field names the mobile client reads.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConversationMessage(CamelModel):
    """One analysed screenshot."""
    timestamp: int
    frame_number: int = 0  # Client-supplied ordinal, not validated
    ai_analysis: str
    screenshot_hash: Optional[str] = None


class NotificationRecord(CamelModel):
    """A coaching notification that was actually delivered."""
    type: str  # e.g. "endless-small-talk", "passive-planning", "friendzone-alert"
    title: str
    body: str
    sent_at: int
    trigger_reason: str = ""


class UserPatterns(CamelModel):
    """Coarse summary of how the user is doing in this conversation."""
    common_mistakes: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    current_state: str = "new"  # "new", "improving", "regressing", "stagnant"


class ConversationMemory(CamelModel):
    """Durable per-conversation state."""
    conversation_id: str
    device_id: str
    started_at: int
    last_updated_at: int
    messages: list[ConversationMessage] = Field(default_factory=list)
    notifications: list[NotificationRecord] = Field(default_factory=list)
    patterns: UserPatterns = Field(default_factory=UserPatterns)

    # Storage version of the loaded record; 0 means never persisted
    version: int = Field(default=0, exclude=True)


class DuplicateCheckResult(CamelModel):
    """Outcome of the notification cooldown check."""
    is_duplicate: bool
    reason: Optional[str] = None
    last_sent_at: Optional[int] = None
