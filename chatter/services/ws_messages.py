"""WebSocket message factory functions.

Each function returns a plain dict with a ``type`` field plus data fields.
The realtime gateway builds every outbound frame through these factories.
"""

from __future__ import annotations

NEW_DIRECT_MESSAGE = "new_direct_message"
NEW_GROUP_MESSAGE = "new_group_message"
USER_TYPING = "user_typing"
USER_STOP_TYPING = "user_stop_typing"
MONITOR_MESSAGE = "monitor_message"
ERROR = "error"
PING = "ping"


def event(event_type: str, payload: dict) -> dict:
    """Wrap *payload* in an envelope whose ``type`` is always *event_type*."""
    return {**payload, "type": event_type}


def new_direct_message(message: dict) -> dict:
    """A persisted direct message, flattened into the frame."""
    return event(NEW_DIRECT_MESSAGE, message)


def new_group_message(message: dict) -> dict:
    return event(NEW_GROUP_MESSAGE, message)


def user_typing(*, user_id: int, username: str) -> dict:
    return {"type": USER_TYPING, "user_id": user_id, "username": username}


def user_stop_typing(*, user_id: int) -> dict:
    return {"type": USER_STOP_TYPING, "user_id": user_id}


def monitor_message(message: dict) -> dict:
    """Full message details mirrored to the superadmin monitor."""
    return event(MONITOR_MESSAGE, message)


def error(*, message: str) -> dict:
    """Rejected event or failed operation, sent to the originator only."""
    return {"type": ERROR, "message": message}


def ping() -> dict:
    """Heartbeat frame."""
    return {"type": PING}
