"""Connection registry: user id -> live connection id(s).

The default ``ConnectionRegistry`` keeps exactly one connection per user.
A newer connection overwrites the entry and the older one is *not* closed;
it simply stops being reachable through per-user delivery until it
disconnects on its own. ``MultiConnectionRegistry`` keeps every connection
instead. Both expose ``connections_for``, which is the only method the
gateway uses to resolve per-user delivery targets, so swapping one for the
other does not change event handling.

All methods are synchronous: mutations never straddle an ``await``.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Latest-connection-wins mapping of ``user_id`` to connection id."""

    def __init__(self) -> None:
        self._by_user: dict[int, str] = {}

    def register(self, user_id: int, connection_id: str) -> None:
        """Record *connection_id* as the user's connection, replacing any prior one."""
        previous = self._by_user.get(user_id)
        if previous is not None and previous != connection_id:
            logger.debug(
                "User %d connection %s replaced by %s", user_id, previous, connection_id
            )
        self._by_user[user_id] = connection_id

    def unregister(self, user_id: int, connection_id: str) -> bool:
        """Remove the entry only if it still points at *connection_id*.

        A late disconnect from a replaced connection leaves the newer entry
        untouched. Returns whether anything was removed.
        """
        if self._by_user.get(user_id) != connection_id:
            return False
        del self._by_user[user_id]
        return True

    def lookup(self, user_id: int) -> str | None:
        return self._by_user.get(user_id)

    def connections_for(self, user_id: int) -> list[str]:
        """Connection ids that per-user delivery should target."""
        connection_id = self._by_user.get(user_id)
        return [connection_id] if connection_id is not None else []

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._by_user

    def __len__(self) -> int:
        return len(self._by_user)


class MultiConnectionRegistry(ConnectionRegistry):
    """Variant that fans per-user delivery out to every open connection."""

    def __init__(self) -> None:
        super().__init__()
        # Insertion-ordered so the newest connection is last.
        self._all: dict[int, dict[str, None]] = {}

    def register(self, user_id: int, connection_id: str) -> None:
        connections = self._all.setdefault(user_id, {})
        connections.pop(connection_id, None)
        connections[connection_id] = None
        self._by_user[user_id] = connection_id

    def unregister(self, user_id: int, connection_id: str) -> bool:
        connections = self._all.get(user_id)
        if not connections or connection_id not in connections:
            return False
        del connections[connection_id]
        if connections:
            self._by_user[user_id] = next(reversed(connections))
        else:
            del self._all[user_id]
            del self._by_user[user_id]
        return True

    def connections_for(self, user_id: int) -> list[str]:
        return list(self._all.get(user_id, ()))
