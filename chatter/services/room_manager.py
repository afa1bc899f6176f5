"""Room membership: which connections receive which broadcasts.

A room subscription only controls delivery. It is never authorization:
posting to a group is re-checked against durable membership on every send.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

MONITOR_ROOM = "monitor"


def user_room(user_id: int) -> str:
    """Name of the personal room every connection of *user_id* joins on connect."""
    return f"user_{user_id}"


def group_room(group_id: int) -> str:
    return f"group_{group_id}"


def is_personal_room(room_id: str) -> bool:
    return room_id.startswith("user_")


class RoomManager:
    """Tracks room -> connections and connection -> rooms."""

    def __init__(self) -> None:
        self._members: dict[str, set[str]] = {}
        self._rooms: dict[str, set[str]] = {}

    def subscribe(self, connection_id: str, room_id: str) -> bool:
        """Add *connection_id* to *room_id*. Returns ``False`` if already subscribed."""
        members = self._members.setdefault(room_id, set())
        if connection_id in members:
            return False
        members.add(connection_id)
        self._rooms.setdefault(connection_id, set()).add(room_id)
        return True

    def unsubscribe(self, connection_id: str, room_id: str) -> bool:
        """Remove *connection_id* from *room_id*. Returns ``False`` if it was not a member."""
        members = self._members.get(room_id)
        if not members or connection_id not in members:
            return False
        members.discard(connection_id)
        if not members:
            del self._members[room_id]

        rooms = self._rooms.get(connection_id)
        if rooms is not None:
            rooms.discard(room_id)
            if not rooms:
                del self._rooms[connection_id]
        return True

    def remove_connection(self, connection_id: str) -> set[str]:
        """Drop every subscription held by *connection_id*; return the rooms it left."""
        rooms = self._rooms.pop(connection_id, set())
        for room_id in rooms:
            members = self._members.get(room_id)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._members[room_id]
        return rooms

    def members_of(self, room_id: str) -> set[str]:
        """Snapshot of the connections subscribed to *room_id*."""
        return set(self._members.get(room_id, ()))

    def rooms_of(self, connection_id: str) -> set[str]:
        return set(self._rooms.get(connection_id, ()))

    def is_subscribed(self, connection_id: str, room_id: str) -> bool:
        return connection_id in self._members.get(room_id, ())

    def __len__(self) -> int:
        return len(self._members)
