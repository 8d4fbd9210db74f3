"""Conversation memory: identity, storage and anti-spam policy."""

from .kv_store import KVStore, SQLiteKVStore, StorageError, ConcurrentUpdateError
from .conversation_store import ConversationStore, get_memory_summary
from .identity import resolve_device_id, resolve_conversation_id, generate_conversation_id
from .policy import (
    compute_screenshot_hash,
    is_screenshot_duplicate,
    check_duplicate_rules,
    classify_notification_type,
)

__all__ = [
    "KVStore",
    "SQLiteKVStore",
    "StorageError",
    "ConcurrentUpdateError",
    "ConversationStore",
    "get_memory_summary",
    "resolve_device_id",
    "resolve_conversation_id",
    "generate_conversation_id",
    "compute_screenshot_hash",
    "is_screenshot_duplicate",
    "check_duplicate_rules",
    "classify_notification_type",
]
