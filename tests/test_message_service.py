"""Tests for chatter.services.message_service and the PersistenceGateway facade."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import aiosqlite
import pytest
from freezegun import freeze_time

from chatter.exceptions import PersistenceError, ValidationError
from chatter.services import message_service
from chatter.services.persistence import PersistenceGateway
from tests.factories import insert_group, make_group


class TestCreateMessage:
    async def test_direct_message_has_sender_username(self, fresh_db, alice, bob):
        message = await message_service.create_message(
            fresh_db, content="hi", sender_id=alice["id"], recipient_id=bob["id"]
        )
        assert message["content"] == "hi"
        assert message["sender_username"] == "alice"
        assert message["recipient_id"] == bob["id"]
        assert message["group_id"] is None

    async def test_group_message(self, fresh_db, alice):
        group_id = await insert_group(fresh_db, make_group(created_by=alice["id"]))
        message = await message_service.create_message(
            fresh_db, content="yo", sender_id=alice["id"], group_id=group_id
        )
        assert message["group_id"] == group_id
        assert message["recipient_id"] is None

    async def test_rejects_both_targets(self, fresh_db, alice, bob):
        group_id = await insert_group(fresh_db, make_group(created_by=alice["id"]))
        with pytest.raises(ValidationError):
            await message_service.create_message(
                fresh_db, content="x", sender_id=alice["id"], recipient_id=bob["id"], group_id=group_id
            )

    async def test_rejects_no_target(self, fresh_db, alice):
        with pytest.raises(ValidationError):
            await message_service.create_message(fresh_db, content="x", sender_id=alice["id"])

        cursor = await fresh_db.execute("SELECT COUNT(*) FROM messages")
        assert (await cursor.fetchone())[0] == 0


class TestDetails:
    async def test_group_message_details(self, fresh_db, alice):
        group_id = await insert_group(fresh_db, make_group(name="ops", created_by=alice["id"]))
        message = await message_service.create_message(
            fresh_db, content="yo", sender_id=alice["id"], group_id=group_id
        )
        details = await message_service.find_message_with_details(fresh_db, message["id"])
        assert details["group_name"] == "ops"
        assert details["recipient_username"] is None

    async def test_direct_message_details(self, fresh_db, alice, bob):
        message = await message_service.create_message(
            fresh_db, content="hi", sender_id=alice["id"], recipient_id=bob["id"]
        )
        details = await message_service.find_message_with_details(fresh_db, message["id"])
        assert details["recipient_username"] == "bob"
        assert details["group_name"] is None


class TestHistory:
    async def test_direct_history_both_directions_oldest_first(self, fresh_db, alice, bob):
        with freeze_time("2026-01-01T10:00:00"):
            await message_service.create_message(
                fresh_db, content="one", sender_id=alice["id"], recipient_id=bob["id"]
            )
        with freeze_time("2026-01-01T10:01:00"):
            await message_service.create_message(
                fresh_db, content="two", sender_id=bob["id"], recipient_id=alice["id"]
            )

        history = await message_service.get_direct_messages(fresh_db, alice["id"], bob["id"])
        assert [m["content"] for m in history] == ["one", "two"]

    async def test_direct_history_limit_keeps_latest(self, fresh_db, alice, bob):
        for i in range(5):
            with freeze_time(f"2026-01-01T10:0{i}:00"):
                await message_service.create_message(
                    fresh_db, content=str(i), sender_id=alice["id"], recipient_id=bob["id"]
                )

        history = await message_service.get_direct_messages(
            fresh_db, alice["id"], bob["id"], limit=2
        )
        assert [m["content"] for m in history] == ["3", "4"]

    async def test_group_history(self, fresh_db, alice):
        group_id = await insert_group(fresh_db, make_group(created_by=alice["id"]))
        await message_service.create_message(
            fresh_db, content="g", sender_id=alice["id"], group_id=group_id
        )
        history = await message_service.get_group_messages(fresh_db, group_id)
        assert [m["content"] for m in history] == ["g"]

    async def test_all_messages_newest_first(self, fresh_db, alice, bob):
        with freeze_time("2026-01-01T10:00:00"):
            await message_service.create_message(
                fresh_db, content="old", sender_id=alice["id"], recipient_id=bob["id"]
            )
        with freeze_time("2026-01-01T11:00:00"):
            await message_service.create_message(
                fresh_db, content="new", sender_id=bob["id"], recipient_id=alice["id"]
            )
        feed = await message_service.get_all_messages(fresh_db)
        assert [m["content"] for m in feed] == ["new", "old"]
        assert feed[0]["recipient_username"] == "alice"


class TestConversations:
    async def test_direct_and_group_sorted_by_latest(self, fresh_db, alice, bob):
        group_id = await insert_group(
            fresh_db, make_group(name="ops", created_by=alice["id"]), member_ids=(bob["id"],)
        )
        with freeze_time("2026-01-01T10:00:00"):
            await message_service.create_message(
                fresh_db, content="dm", sender_id=bob["id"], recipient_id=alice["id"]
            )
        with freeze_time("2026-01-01T12:00:00"):
            await message_service.create_message(
                fresh_db, content="g", sender_id=bob["id"], group_id=group_id
            )

        conversations = await message_service.get_user_conversations(fresh_db, alice["id"])

        assert [(c["type"], c["name"]) for c in conversations] == [
            ("group", "ops"),
            ("direct", "bob"),
        ]
        assert conversations[1]["id"] == bob["id"]

    async def test_no_history(self, fresh_db, alice):
        assert await message_service.get_user_conversations(fresh_db, alice["id"]) == []


class TestPersistenceGateway:
    async def test_delegates_to_services(self, fresh_db, alice, bob):
        store = PersistenceGateway(fresh_db)
        assert (await store.find_user_by_id(bob["id"]))["username"] == "bob"

        message = await store.create_message("hi", alice["id"], recipient_id=bob["id"])
        details = await store.find_message_with_details(message["id"])
        assert details["recipient_username"] == "bob"

    async def test_membership(self, fresh_db, alice, bob):
        group_id = await insert_group(fresh_db, make_group(created_by=alice["id"]))
        store = PersistenceGateway(fresh_db)
        assert await store.is_group_member(group_id, alice["id"]) is True
        assert await store.is_group_member(group_id, bob["id"]) is False
        assert (await store.find_group_by_id(group_id))["id"] == group_id

    async def test_store_failure_becomes_persistence_error(self):
        db = MagicMock()
        db.execute = AsyncMock(side_effect=aiosqlite.OperationalError("disk I/O error"))
        store = PersistenceGateway(db)

        with pytest.raises(PersistenceError) as exc_info:
            await store.find_user_by_id(1)
        assert exc_info.value.message == "Internal server error"

    async def test_validation_error_passes_through(self, fresh_db, alice):
        store = PersistenceGateway(fresh_db)
        with pytest.raises(ValidationError):
            await store.create_message("x", alice["id"])
