"""In-process push fan-out for calendar change notifications.

Each open SSE stream registers a queue for its user. The inbound webhook
puts a message on every queue registered for the channel owner; streams
that are not connected miss it and fall back to the pending-updates poll.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Dict, Iterator, List, Optional

from calimbus import config

logger = logging.getLogger(__name__)

LISTENERS: Dict[str, List["queue.Queue[Dict[str, object]]"]] = {}
LISTENERS_LOCK = threading.Lock()


def register_listener(user_id: str) -> "queue.Queue[Dict[str, object]]":
    channel: "queue.Queue[Dict[str, object]]" = queue.Queue()
    with LISTENERS_LOCK:
        LISTENERS.setdefault(str(user_id), []).append(channel)
    logger.debug("SSE listener registered for user %s", user_id)
    return channel


def unregister_listener(user_id: str, channel: "queue.Queue[Dict[str, object]]") -> None:
    with LISTENERS_LOCK:
        channels = LISTENERS.get(str(user_id), [])
        if channel in channels:
            channels.remove(channel)
        if not channels:
            LISTENERS.pop(str(user_id), None)
    logger.debug("SSE listener removed for user %s", user_id)


def listener_count(user_id: str) -> int:
    with LISTENERS_LOCK:
        return len(LISTENERS.get(str(user_id), []))


def notify_user(user_id: str, message: Dict[str, object]) -> int:
    """Deliver a message to every open stream of a user; returns how many got it."""
    with LISTENERS_LOCK:
        channels = list(LISTENERS.get(str(user_id), []))
    for channel in channels:
        channel.put(message)
    if channels:
        logger.info("Pushed %s to %d listener(s) for user %s", message.get("type"), len(channels), user_id)
    return len(channels)


def format_event(message: Dict[str, object]) -> bytes:
    return f"data: {json.dumps(message)}\n\n".encode("utf-8")


def sse_stream(
    user_id: str,
    heartbeat_seconds: Optional[float] = None,
    max_messages: Optional[int] = None,
) -> Iterator[bytes]:
    """Yield SSE frames: a connected message, then updates and heartbeats."""
    interval = config.SSE_HEARTBEAT_SECONDS if heartbeat_seconds is None else heartbeat_seconds
    channel = register_listener(user_id)
    sent = 0
    try:
        yield format_event({"type": "connected"})
        while max_messages is None or sent < max_messages:
            try:
                message = channel.get(timeout=interval)
            except queue.Empty:
                yield format_event({"type": "heartbeat"})
                continue
            yield format_event(message)
            sent += 1
    finally:
        unregister_listener(user_id, channel)
