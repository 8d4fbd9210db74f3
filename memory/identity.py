"""Device and conversation identity resolution.

Screenshots from the same device that arrive within the same fixed two-hour
bucket map onto the same conversation id without any lookup. A real
conversation that straddles a bucket boundary is split in two, and unrelated
sessions inside one bucket are merged.
"""

import hashlib
from typing import Mapping, Optional

# Screenshots from one device within this window belong to one conversation
CONVERSATION_TIME_WINDOW_MS = 2 * 60 * 60 * 1000

# Transport headers checked for a device identifier, highest priority first
DEVICE_ID_HEADERS = ("x-device-id", "x-client-id", "user-agent")


def resolve_device_id(
    headers: Mapping[str, str],
    fallback: str = "unknown-device"
) -> str:
    """
    Pick a device identifier from request headers.

    Args:
        headers: Request headers (any casing)
        fallback: Identifier to use when no hint is present

    Returns:
        Device identifier
    """
    lowered = {k.lower(): v for k, v in (headers or {}).items()}
    for name in DEVICE_ID_HEADERS:
        value = lowered.get(name)
        if value and value.strip():
            return value.strip()
    return fallback


def generate_conversation_id(device_id: str, timestamp_ms: int) -> str:
    """Derive a deterministic conversation id from device and time bucket."""
    window_start = timestamp_ms // CONVERSATION_TIME_WINDOW_MS
    digest = hashlib.sha256(f"{device_id}:{window_start}".encode("utf-8")).hexdigest()
    return f"conv_{digest[:16]}"


def resolve_conversation_id(
    provided_id: Optional[str],
    device_id: str,
    timestamp_ms: int
) -> str:
    """
    Use the client's conversation id if given, otherwise derive one.

    A provided id is trusted verbatim (after trimming); its existence is
    not checked.
    """
    if provided_id and provided_id.strip():
        return provided_id.strip()

    return generate_conversation_id(device_id, timestamp_ms)
