"""Durable, expiring storage of one memory record per conversation."""

import logging
from typing import Any, Callable, Dict, List, Optional

from schemas.memory import (
    ConversationMemory,
    ConversationMessage,
    NotificationRecord,
    UserPatterns,
)
from utils.clock import now_ms
from .kv_store import KVStore, StorageError, ConcurrentUpdateError

logger = logging.getLogger(__name__)

CONVERSATION_KEY_PREFIX = "conversations:"


def conversation_key(conversation_id: str) -> str:
    """Storage key of a conversation memory record."""
    return f"{CONVERSATION_KEY_PREFIX}{conversation_id}"


def device_conversations_key(device_id: str) -> str:
    """Storage key of a device's conversation id set."""
    return f"user:{device_id}:conversations"


class ConversationStore:
    """Loads, bounds and persists ConversationMemory records."""

    # Configuration
    MAX_MESSAGES = 20
    MAX_NOTIFICATIONS = 10
    TTL_SECONDS = 7 * 24 * 60 * 60
    MAX_UPDATE_ATTEMPTS = 3

    def __init__(self, kv: KVStore, clock: Callable[[], int] = now_ms):
        """
        Initialize conversation store.

        Args:
            kv: Key/value storage backend
            clock: Millisecond clock for timestamps
        """
        self.kv = kv
        self.clock = clock

    def new_memory(self, conversation_id: str, device_id: str) -> ConversationMemory:
        """Build a fresh, unpersisted memory record."""
        now = self.clock()
        return ConversationMemory(
            conversation_id=conversation_id,
            device_id=device_id,
            started_at=now,
            last_updated_at=now,
        )

    def load(self, conversation_id: str, device_id: str) -> ConversationMemory:
        """
        Load conversation memory, creating a fresh record if none is stored.

        Read failures are logged and answered with a fresh record so the
        request can proceed as if the conversation were new. A stored record
        that cannot be decoded is replaced by the next save; when the backend
        itself fails the stored state is unknown and the fresh record must
        not overwrite it.

        Args:
            conversation_id: Conversation ID
            device_id: Owning device ID (used for a fresh record)

        Returns:
            ConversationMemory (version 0 when not yet persisted)
        """
        try:
            entry = self.kv.get(conversation_key(conversation_id))
        except StorageError as e:
            logger.error(f"Error loading conversation memory {conversation_id}: {e}")
            return self.new_memory(conversation_id, device_id)

        if not entry:
            return self.new_memory(conversation_id, device_id)

        try:
            memory = ConversationMemory.model_validate_json(entry.value)
        except ValueError as e:
            logger.error(f"Unreadable conversation memory {conversation_id}, starting over: {e}")
            memory = self.new_memory(conversation_id, device_id)

        memory.version = entry.version
        return memory

    def save(self, memory: ConversationMemory):
        """
        Persist a memory record.

        Trims messages and notifications to their bounds (oldest dropped),
        writes with the retention TTL and refreshes the device index.

        Raises:
            StorageError: If the write fails
            ConcurrentUpdateError: If the record changed since it was loaded
        """
        memory.last_updated_at = max(self.clock(), memory.last_updated_at)

        if len(memory.messages) > self.MAX_MESSAGES:
            memory.messages = memory.messages[-self.MAX_MESSAGES:]
        if len(memory.notifications) > self.MAX_NOTIFICATIONS:
            memory.notifications = memory.notifications[-self.MAX_NOTIFICATIONS:]

        payload = memory.model_dump_json(by_alias=True)
        try:
            memory.version = self.kv.put(
                conversation_key(memory.conversation_id),
                payload,
                ttl_seconds=self.TTL_SECONDS,
                expected_version=memory.version,
            )
            self.kv.add_to_set(
                device_conversations_key(memory.device_id),
                memory.conversation_id,
                ttl_seconds=self.TTL_SECONDS,
            )
        except StorageError as e:
            logger.error(f"Error saving conversation memory {memory.conversation_id}: {e}")
            raise

    def update(
        self,
        conversation_id: str,
        device_id: str,
        mutate: Callable[[ConversationMemory], None]
    ) -> ConversationMemory:
        """
        Load, mutate and save a record as one unit.

        When another writer saved the same conversation in between, the
        record is reloaded and the mutation applied again, so neither
        writer's change is lost.

        Args:
            conversation_id: Conversation ID
            device_id: Owning device ID
            mutate: Function applying the change in place

        Returns:
            The saved ConversationMemory
        """
        for attempt in range(1, self.MAX_UPDATE_ATTEMPTS + 1):
            memory = self.load(conversation_id, device_id)
            mutate(memory)
            try:
                self.save(memory)
                return memory
            except ConcurrentUpdateError as e:
                if attempt == self.MAX_UPDATE_ATTEMPTS:
                    raise
                logger.warning(f"{e}; retrying ({attempt}/{self.MAX_UPDATE_ATTEMPTS})")

    def append_message(
        self,
        conversation_id: str,
        device_id: str,
        message: ConversationMessage
    ) -> ConversationMemory:
        """Append an analysed screenshot to conversation memory."""
        return self.update(
            conversation_id, device_id, lambda memory: memory.messages.append(message)
        )

    def append_notification(
        self,
        conversation_id: str,
        device_id: str,
        notification: NotificationRecord
    ) -> ConversationMemory:
        """Record a delivered notification in conversation memory."""
        return self.update(
            conversation_id, device_id, lambda memory: memory.notifications.append(notification)
        )

    def update_patterns(
        self,
        conversation_id: str,
        device_id: str,
        patterns: Dict[str, Any]
    ) -> ConversationMemory:
        """Merge partial pattern fields into conversation memory."""
        def apply(memory: ConversationMemory):
            merged = memory.patterns.model_dump()
            merged.update(patterns)
            memory.patterns = UserPatterns.model_validate(merged)

        return self.update(conversation_id, device_id, apply)

    def list_device_conversation_ids(self, device_id: str) -> List[str]:
        """Conversation ids written by a device within the retention window."""
        return self.kv.set_members(device_conversations_key(device_id))

    def get_device_notifications(self, device_id: str) -> List[Dict[str, Any]]:
        """
        Collect notifications across all of a device's conversations.

        Returns:
            Notification dicts (camelCase, with conversationId), newest first
        """
        notifications = []
        for conversation_id in self.list_device_conversation_ids(device_id):
            entry = self.kv.get(conversation_key(conversation_id))
            if not entry:
                continue
            try:
                memory = ConversationMemory.model_validate_json(entry.value)
            except ValueError as e:
                logger.warning(f"Skipping unreadable record {conversation_id}: {e}")
                continue
            for notification in memory.notifications:
                item = notification.model_dump(by_alias=True)
                item["conversationId"] = conversation_id
                notifications.append(item)

        notifications.sort(key=lambda n: n["sentAt"], reverse=True)
        return notifications

    def list_conversations(self, limit: Optional[int] = None) -> List[ConversationMemory]:
        """List stored conversations by key scan (debug only)."""
        memories = []
        for key in self.kv.scan_keys(CONVERSATION_KEY_PREFIX):
            entry = self.kv.get(key)
            if not entry:
                continue
            try:
                memory = ConversationMemory.model_validate_json(entry.value)
            except ValueError as e:
                logger.warning(f"Skipping unreadable record {key}: {e}")
                continue
            memory.version = entry.version
            memories.append(memory)

        memories.sort(key=lambda m: m.last_updated_at, reverse=True)
        return memories[:limit] if limit else memories


def get_memory_summary(memory: ConversationMemory) -> str:
    """One-line summary of a memory record for display and debugging."""
    last = memory.notifications[-1].type if memory.notifications else "none"
    return (
        f"Conversation {memory.conversation_id}: {len(memory.messages)} messages, "
        f"{len(memory.notifications)} notifications. "
        f"Current state: {memory.patterns.current_state}. Last notification: {last}"
    )
