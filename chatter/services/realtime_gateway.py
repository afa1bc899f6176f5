"""Realtime gateway: connection lifecycle, event dispatch and fan-out.

One instance is created in ``main.py``'s lifespan and shared through
``app.state.gateway``. It owns the connection table, the
``ConnectionRegistry`` and the ``RoomManager``; nothing else mutates them.

Sending a message always goes through ``send_direct_message`` /
``send_group_message``, whether the request arrived as a WebSocket event or
an HTTP call: validate, persist, then broadcast. Nothing is broadcast before
the store confirms the write.

Registry and room mutations are synchronous. The only suspension points are
token verification, persistence calls and socket writes, and fan-out target
sets are snapshotted before the first write.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from chatter.config import Settings, get_settings
from chatter.exceptions import (
    AuthorizationError,
    ChatterError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from chatter.models import SendDirectMessageRequest, SendGroupMessageRequest, UserIdentity
from chatter.services import ws_messages
from chatter.services.connection_registry import ConnectionRegistry, MultiConnectionRegistry
from chatter.services.realtime_events import (
    EVENT_HANDLERS,
    ConnectionPhase,
    ConnectionState,
    Effect,
    Emit,
    EmitToUser,
    Reply,
    Subscribe,
    Unsubscribe,
)
from chatter.services.room_manager import (
    MONITOR_ROOM,
    RoomManager,
    group_room,
    is_personal_room,
    user_room,
)

logger = logging.getLogger(__name__)


class RealtimeGateway:
    """Authenticates connections, routes their events and fans out messages.

    *persistence* must provide ``find_user_by_id``, ``find_group_by_id``,
    ``is_group_member``, ``create_message`` and ``find_message_with_details``
    (see ``PersistenceGateway``); *identity* must provide ``verify(token)``
    (see ``SessionIdentityVerifier``).
    """

    def __init__(
        self,
        persistence,
        identity,
        *,
        settings: Settings | None = None,
        registry: ConnectionRegistry | None = None,
        rooms: RoomManager | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._persistence = persistence
        self._identity = identity
        if registry is None:
            registry = (
                ConnectionRegistry()
                if self._settings.single_connection_per_user
                else MultiConnectionRegistry()
            )
        self.registry = registry
        self.rooms = rooms or RoomManager()
        self._connections: dict[str, ConnectionState] = {}
        self._running = False
        self._send_handlers = {
            "send_direct_message": self._handle_send_direct_message,
            "send_group_message": self._handle_send_group_message,
        }

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        logger.info("Realtime gateway started")

    async def stop(self) -> None:
        """Close every live connection and forget all realtime state."""
        self._running = False
        for state in list(self._connections.values()):
            try:
                await state.transport.close(code=1001)
            except Exception as exc:
                logger.debug("Closing connection %s failed: %s", state.connection_id, exc)
            self.disconnect(state)
        logger.info("Realtime gateway stopped")

    def stats(self) -> dict:
        return {
            "running": self._running,
            "connections": len(self._connections),
            "users": len(self.registry),
            "rooms": len(self.rooms),
        }

    # -----------------------------------------------------------------------
    # Connection lifecycle: CONNECTING -> AUTHENTICATED -> ACTIVE -> CLOSED
    # -----------------------------------------------------------------------

    async def authenticate(self, token: str | None) -> UserIdentity:
        """Verify the handshake credential. Raises ``AuthenticationError``."""
        return await self._identity.verify(token)

    def connect(self, transport, identity: UserIdentity) -> ConnectionState:
        """Admit an authenticated transport and make it ACTIVE."""
        if not self._running:
            raise RuntimeError("Realtime gateway is not running")

        state = ConnectionState(
            connection_id=str(uuid4()),
            identity=identity,
            transport=transport,
            phase=ConnectionPhase.AUTHENTICATED,
        )
        self._connections[state.connection_id] = state
        self.registry.register(identity.user_id, state.connection_id)
        self.rooms.subscribe(state.connection_id, user_room(identity.user_id))
        if identity.username == self._settings.superadmin_username:
            self.rooms.subscribe(state.connection_id, MONITOR_ROOM)
        state.phase = ConnectionPhase.ACTIVE

        logger.info(
            "User %s connected (user_id=%d, connection=%s)",
            identity.username,
            identity.user_id,
            state.connection_id,
        )
        return state

    def disconnect(self, state: ConnectionState) -> None:
        """Tear down registry and room state. Safe to call more than once."""
        if state.phase is ConnectionPhase.CLOSED:
            return
        state.phase = ConnectionPhase.CLOSED
        self.registry.unregister(state.user_id, state.connection_id)
        self.rooms.remove_connection(state.connection_id)
        self._connections.pop(state.connection_id, None)

        logger.info(
            "User %s disconnected (connection=%s)",
            state.identity.username,
            state.connection_id,
        )

    @asynccontextmanager
    async def session(self, transport, identity: UserIdentity):
        """Scope a connection: cleanup runs exactly once however it ends."""
        state = self.connect(transport, identity)
        try:
            yield state
        finally:
            self.disconnect(state)

    def get_connection(self, connection_id: str) -> ConnectionState | None:
        return self._connections.get(connection_id)

    # -----------------------------------------------------------------------
    # Inbound events
    # -----------------------------------------------------------------------

    async def dispatch(self, state: ConnectionState, frame: object) -> None:
        """Handle one inbound frame ``{"event": name, "data": {...}}``.

        Errors never escape: they are reported to this connection only.
        """
        if not state.is_active:
            logger.debug("Ignoring frame for inactive connection %s", state.connection_id)
            return

        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self._reply(state, ws_messages.error(message="Malformed event"))
            return

        name = frame["event"]
        data = frame.get("data")
        if not isinstance(data, dict):
            data = {}

        try:
            handler = EVENT_HANDLERS.get(name)
            if handler is not None:
                await self.apply(state, handler(state, data))
                return

            send_handler = self._send_handlers.get(name)
            if send_handler is None:
                await self._reply(state, ws_messages.error(message=f"Unknown event: {name}"))
                return
            await send_handler(state, data)
        except Exception:
            logger.exception("Unhandled error processing %s from %s", name, state.connection_id)
            await self._reply(state, ws_messages.error(message="Internal server error"))

    async def apply(self, state: ConnectionState, effects: list[Effect]) -> None:
        """Carry out the effects returned by an event handler, in order."""
        for effect in effects:
            if isinstance(effect, Subscribe):
                if state.is_active:
                    self.rooms.subscribe(state.connection_id, effect.room_id)
            elif isinstance(effect, Unsubscribe):
                # Personal and monitor rooms are not client-removable.
                if is_personal_room(effect.room_id) or effect.room_id == MONITOR_ROOM:
                    continue
                self.rooms.unsubscribe(state.connection_id, effect.room_id)
            elif isinstance(effect, Emit):
                targets = self.rooms.members_of(effect.room_id)
                targets.discard(effect.exclude)
                await self._deliver(targets, effect.frame)
            elif isinstance(effect, EmitToUser):
                await self._deliver(self._user_targets(effect.user_id), effect.frame)
            elif isinstance(effect, Reply):
                await self._reply(state, effect.frame)

    async def _handle_send_direct_message(self, state: ConnectionState, data: dict) -> None:
        try:
            event = SendDirectMessageRequest.model_validate(data)
        except PydanticValidationError:
            await self._reply(
                state, ws_messages.error(message="Recipient ID and content are required")
            )
            return
        try:
            await self.send_direct_message(state.identity, event.recipient_id, event.content)
        except ChatterError as exc:
            await self._reply(state, ws_messages.error(message=exc.message))

    async def _handle_send_group_message(self, state: ConnectionState, data: dict) -> None:
        try:
            event = SendGroupMessageRequest.model_validate(data)
        except PydanticValidationError:
            await self._reply(state, ws_messages.error(message="Group ID and content are required"))
            return
        try:
            await self.send_group_message(state.identity, event.group_id, event.content)
        except ChatterError as exc:
            await self._reply(state, ws_messages.error(message=exc.message))

    # -----------------------------------------------------------------------
    # Persist-then-broadcast (shared by HTTP and WebSocket callers)
    # -----------------------------------------------------------------------

    def _check_content(self, content: object) -> str:
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Content is required")
        limit = self._settings.max_message_length
        if len(content) > limit:
            raise ValidationError(f"Content exceeds {limit} characters")
        return content

    async def send_message(
        self,
        sender: UserIdentity,
        *,
        content: str,
        recipient_id: int | None = None,
        group_id: int | None = None,
    ) -> dict:
        """Send to exactly one of a user or a group; reject anything else up front."""
        if (recipient_id is None) == (group_id is None):
            raise ValidationError(
                "Either recipient_id (for direct message) or group_id "
                "(for group message) must be provided, but not both"
            )
        if recipient_id is not None:
            return await self.send_direct_message(sender, recipient_id, content)
        return await self.send_group_message(sender, group_id, content)

    async def send_direct_message(
        self, sender: UserIdentity, recipient_id: int, content: str
    ) -> dict:
        """Persist a direct message and push it to sender and recipient.

        Raises ``ValidationError``, ``NotFoundError`` or ``PersistenceError``;
        nothing is broadcast unless the write succeeded.
        """
        content = self._check_content(content)
        recipient = await self._persistence.find_user_by_id(recipient_id)
        if recipient is None:
            raise NotFoundError("Recipient not found")

        message = await self._persistence.create_message(
            content, sender.user_id, recipient_id=recipient_id
        )

        # Union of both users' targets: a self-DM is delivered once.
        targets = self._user_targets(sender.user_id) | self._user_targets(recipient_id)
        await self._deliver(targets, ws_messages.new_direct_message(message))
        await self._mirror_to_monitor(message)
        return message

    async def send_group_message(self, sender: UserIdentity, group_id: int, content: str) -> dict:
        """Persist a group message and push it to the group's room subscribers.

        Membership is checked against the store on every send, regardless
        of room subscription.
        """
        content = self._check_content(content)
        group = await self._persistence.find_group_by_id(group_id)
        if group is None:
            raise NotFoundError("Group not found")
        if not await self._persistence.is_group_member(group_id, sender.user_id):
            raise AuthorizationError("You are not a member of this group")

        message = await self._persistence.create_message(
            content, sender.user_id, group_id=group_id
        )

        await self._deliver(
            self.rooms.members_of(group_room(group_id)), ws_messages.new_group_message(message)
        )
        await self._mirror_to_monitor(message)
        return message

    async def _mirror_to_monitor(self, message: dict) -> None:
        if not self.rooms.members_of(MONITOR_ROOM):
            return
        try:
            details = await self._persistence.find_message_with_details(message["id"])
        except PersistenceError:
            logger.warning("Monitor mirror skipped for message %s", message["id"])
            return
        await self.broadcast_to_superadmin_monitor(details or message)

    # -----------------------------------------------------------------------
    # Outward broadcast primitives
    # -----------------------------------------------------------------------

    async def broadcast(self, user_id: int, event: str, payload: dict) -> int:
        """Push an event to a user's delivery targets. Returns deliveries made."""
        return await self._deliver(self._user_targets(user_id), ws_messages.event(event, payload))

    async def broadcast_to_room(
        self, room_id: str, event: str, payload: dict, *, exclude: str | None = None
    ) -> int:
        targets = self.rooms.members_of(room_id)
        targets.discard(exclude)
        return await self._deliver(targets, ws_messages.event(event, payload))

    async def broadcast_to_superadmin_monitor(self, message: dict) -> int:
        """Mirror full message details to the monitor room, bypassing group rooms."""
        return await self._deliver(
            self.rooms.members_of(MONITOR_ROOM), ws_messages.monitor_message(message)
        )

    def unsubscribe_user(self, user_id: int, room_id: str) -> int:
        """Remove every connection of *user_id* from *room_id* (e.g. after leaving a group)."""
        removed = 0
        for state in list(self._connections.values()):
            if state.user_id == user_id and self.rooms.unsubscribe(state.connection_id, room_id):
                removed += 1
        return removed

    # -----------------------------------------------------------------------
    # Delivery
    # -----------------------------------------------------------------------

    def _user_targets(self, user_id: int) -> set[str]:
        """Registry connections for *user_id* that sit in its personal room."""
        room_id = user_room(user_id)
        return {
            connection_id
            for connection_id in self.registry.connections_for(user_id)
            if self.rooms.is_subscribed(connection_id, room_id)
        }

    async def _deliver(self, connection_ids: set[str], frame: dict) -> int:
        """Send *frame* once to each target; one failing socket never blocks the rest."""
        delivered = 0
        for connection_id in list(connection_ids):
            state = self._connections.get(connection_id)
            if state is None or not state.is_active:
                continue
            try:
                await state.transport.send_json(frame)
            except Exception as exc:
                logger.warning(
                    "Dropped %s frame for connection %s: %s",
                    frame.get("type"),
                    connection_id,
                    exc,
                )
                continue
            delivered += 1
        return delivered

    async def _reply(self, state: ConnectionState, frame: dict) -> None:
        if not state.is_active:
            logger.debug("Reply to closed connection %s dropped", state.connection_id)
            return
        try:
            await state.transport.send_json(frame)
        except Exception as exc:
            logger.warning("Reply to connection %s failed: %s", state.connection_id, exc)
