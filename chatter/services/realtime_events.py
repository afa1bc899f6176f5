"""Per-connection state and the pure realtime event handlers.

Handlers take the connection's ``ConnectionState`` and the event payload and
return a list of effects. They never touch sockets, the registry or rooms;
the gateway applies the effects. Room changes are expressed as
``Subscribe`` / ``Unsubscribe`` effects, so a handler's return value is the
whole state transition and can be asserted on without a transport.

Typing indicators are a pure relay: nothing is stored server-side and the
client is responsible for expiring a stale indicator.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from chatter.models import GroupRoomEvent, TypingEvent, UserIdentity
from chatter.services import ws_messages
from chatter.services.room_manager import group_room


class ConnectionPhase(enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class ConnectionState:
    """Everything the gateway knows about one live connection."""

    connection_id: str
    identity: UserIdentity
    transport: Any
    phase: ConnectionPhase = ConnectionPhase.AUTHENTICATED
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def user_id(self) -> int:
        return self.identity.user_id

    @property
    def is_active(self) -> bool:
        return self.phase is ConnectionPhase.ACTIVE


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Subscribe:
    room_id: str


@dataclass(frozen=True)
class Unsubscribe:
    room_id: str


@dataclass(frozen=True)
class Emit:
    """Send *frame* to every subscriber of *room_id* except *exclude*."""

    room_id: str
    frame: dict
    exclude: str | None = None


@dataclass(frozen=True)
class EmitToUser:
    """Send *frame* to the user's current delivery targets."""

    user_id: int
    frame: dict


@dataclass(frozen=True)
class Reply:
    """Send *frame* back to the originating connection only."""

    frame: dict


Effect = Union[Subscribe, Unsubscribe, Emit, EmitToUser, Reply]
Handler = Callable[[ConnectionState, dict], list]


# ---------------------------------------------------------------------------
# Room subscription
# ---------------------------------------------------------------------------


def _group_room_of(data: dict) -> str | None:
    try:
        event = GroupRoomEvent.model_validate(data)
    except PydanticValidationError:
        return None
    return group_room(event.group_id)


def handle_join_group(state: ConnectionState, data: dict) -> list[Effect]:
    """Subscribe to ``group_<id>``. A missing id is ignored silently.

    No membership check: receiving is harmless because every send is
    re-authorized against the store.
    """
    room_id = _group_room_of(data)
    return [Subscribe(room_id)] if room_id else []


def handle_leave_group(state: ConnectionState, data: dict) -> list[Effect]:
    room_id = _group_room_of(data)
    return [Unsubscribe(room_id)] if room_id else []


# ---------------------------------------------------------------------------
# Typing relay
# ---------------------------------------------------------------------------


def _relay_typing(state: ConnectionState, data: dict, frame: dict) -> list[Effect]:
    try:
        event = TypingEvent.model_validate(data)
    except PydanticValidationError:
        return [Reply(ws_messages.error(message="Invalid typing event"))]

    if event.type == "direct":
        return [EmitToUser(event.recipient_id, frame)]
    # The typist does not see their own indicator.
    return [Emit(group_room(event.group_id), frame, exclude=state.connection_id)]


def handle_typing_start(state: ConnectionState, data: dict) -> list[Effect]:
    frame = ws_messages.user_typing(
        user_id=state.identity.user_id, username=state.identity.username
    )
    return _relay_typing(state, data, frame)


def handle_typing_stop(state: ConnectionState, data: dict) -> list[Effect]:
    frame = ws_messages.user_stop_typing(user_id=state.identity.user_id)
    return _relay_typing(state, data, frame)


EVENT_HANDLERS: dict[str, Handler] = {
    "join_group": handle_join_group,
    "leave_group": handle_leave_group,
    "typing_start": handle_typing_start,
    "typing_stop": handle_typing_stop,
}
