"""Tests for the pure handlers in chatter.services.realtime_events.

Handlers return effects and never touch a transport, so these tests only
inspect return values.
"""

from __future__ import annotations

from chatter.models import UserIdentity
from chatter.services.realtime_events import (
    EVENT_HANDLERS,
    ConnectionPhase,
    ConnectionState,
    Emit,
    EmitToUser,
    Reply,
    Subscribe,
    Unsubscribe,
    handle_join_group,
    handle_leave_group,
    handle_typing_start,
    handle_typing_stop,
)
from tests.factories import make_ws


def _state(user_id: int = 1, username: str = "alice") -> ConnectionState:
    return ConnectionState(
        connection_id=f"conn-{user_id}",
        identity=UserIdentity(user_id=user_id, username=username),
        transport=make_ws(),
        phase=ConnectionPhase.ACTIVE,
    )


class TestConnectionState:
    def test_defaults_to_authenticated(self):
        state = ConnectionState(
            connection_id="c", identity=UserIdentity(1, "alice"), transport=make_ws()
        )
        assert state.phase is ConnectionPhase.AUTHENTICATED
        assert state.is_active is False
        assert state.user_id == 1


class TestJoinLeave:
    def test_join_subscribes_group_room(self):
        assert handle_join_group(_state(), {"group_id": 7}) == [Subscribe("group_7")]

    def test_leave_unsubscribes_group_room(self):
        assert handle_leave_group(_state(), {"group_id": 7}) == [Unsubscribe("group_7")]

    def test_missing_group_id_is_silent(self):
        assert handle_join_group(_state(), {}) == []
        assert handle_leave_group(_state(), {}) == []

    def test_non_positive_or_non_integer_group_id_is_silent(self):
        assert handle_join_group(_state(), {"group_id": 0}) == []
        assert handle_join_group(_state(), {"group_id": -4}) == []
        assert handle_join_group(_state(), {"group_id": "abc"}) == []

    def test_boolean_group_id_is_not_group_1(self):
        assert handle_join_group(_state(), {"group_id": True}) == []
        assert handle_leave_group(_state(), {"group_id": True}) == []


class TestTyping:
    def test_direct_typing_targets_recipient(self):
        effects = handle_typing_start(_state(), {"type": "direct", "recipient_id": 2})
        assert effects == [
            EmitToUser(2, {"type": "user_typing", "user_id": 1, "username": "alice"})
        ]

    def test_group_typing_excludes_typist(self):
        state = _state()
        effects = handle_typing_start(state, {"type": "group", "group_id": 3})
        assert effects == [
            Emit(
                "group_3",
                {"type": "user_typing", "user_id": 1, "username": "alice"},
                exclude=state.connection_id,
            )
        ]

    def test_stop_typing_frame(self):
        effects = handle_typing_stop(_state(), {"type": "direct", "recipient_id": 2})
        assert effects == [EmitToUser(2, {"type": "user_stop_typing", "user_id": 1})]

    def test_direct_without_recipient_is_rejected(self):
        effects = handle_typing_start(_state(), {"type": "direct", "group_id": 3})
        assert effects == [Reply({"type": "error", "message": "Invalid typing event"})]

    def test_unknown_type_is_rejected(self):
        effects = handle_typing_stop(_state(), {"type": "broadcast"})
        assert effects == [Reply({"type": "error", "message": "Invalid typing event"})]

    def test_boolean_recipient_is_rejected(self):
        effects = handle_typing_start(_state(), {"type": "direct", "recipient_id": True})
        assert effects == [Reply({"type": "error", "message": "Invalid typing event"})]


def test_handler_table():
    assert set(EVENT_HANDLERS) == {"join_group", "leave_group", "typing_start", "typing_stop"}
