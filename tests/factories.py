"""Factory functions for generating test data dicts, plus insert helpers.

Each factory produces a valid dict with ISO 8601 timestamps by default.
Pass keyword overrides to customize individual fields. Integer primary keys
are assigned by SQLite; the ``insert_*`` helpers return the new id.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import aiosqlite


def _now() -> datetime:
    return datetime.utcnow()


def make_user(**overrides: object) -> dict:
    """Return a user dict matching the ``users`` table schema (minus ``id``)."""
    now = _now().isoformat()
    defaults: dict = {
        "username": f"user_{uuid4().hex[:8]}",
        # Not a valid Argon2 hash: password login fails for factory users.
        "password_hash": "not-a-real-hash",
        "created_at": now,
        "updated_at": now,
    }
    return {**defaults, **overrides}


def make_session(**overrides: object) -> dict:
    """Return a session dict matching the ``sessions`` table schema."""
    now = _now()
    defaults: dict = {
        "id": str(uuid4()),
        "user_id": 1,
        "created_at": now.isoformat(),
        "expires_at": (now + timedelta(days=7)).isoformat(),
    }
    return {**defaults, **overrides}


def make_group(**overrides: object) -> dict:
    """Return a group dict matching the ``groups`` table schema (minus ``id``)."""
    now = _now().isoformat()
    defaults: dict = {
        "name": f"group-{uuid4().hex[:6]}",
        "description": None,
        "created_by": 1,
        "created_at": now,
        "updated_at": now,
    }
    return {**defaults, **overrides}


# ---------------------------------------------------------------------------
# Insert helpers
# ---------------------------------------------------------------------------


async def insert_user(db: aiosqlite.Connection, user: dict) -> int:
    cursor = await db.execute(
        "INSERT INTO users (username, password_hash, created_at, updated_at) "
        "VALUES (?, ?, ?, ?)",
        (user["username"], user["password_hash"], user["created_at"], user["updated_at"]),
    )
    await db.commit()
    return cursor.lastrowid


async def insert_session(db: aiosqlite.Connection, session: dict) -> None:
    await db.execute(
        "INSERT INTO sessions (id, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
        (session["id"], session["user_id"], session["created_at"], session["expires_at"]),
    )
    await db.commit()


async def insert_group(db: aiosqlite.Connection, group: dict, member_ids: tuple = ()) -> int:
    """Insert *group* and make its creator plus *member_ids* members."""
    cursor = await db.execute(
        "INSERT INTO groups (name, description, created_by, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?)",
        (
            group["name"],
            group["description"],
            group["created_by"],
            group["created_at"],
            group["updated_at"],
        ),
    )
    group_id = cursor.lastrowid
    for user_id in {group["created_by"], *member_ids}:
        await db.execute(
            "INSERT INTO group_members (group_id, user_id, joined_at) VALUES (?, ?, ?)",
            (group_id, user_id, group["created_at"]),
        )
    await db.commit()
    return group_id


# ---------------------------------------------------------------------------
# Transport doubles
# ---------------------------------------------------------------------------


def make_ws() -> AsyncMock:
    """Create a mock WebSocket with async ``send_json`` and ``close`` methods."""
    ws = AsyncMock()
    ws.send_json = AsyncMock()
    ws.close = AsyncMock()
    return ws


def sent_frames(ws: AsyncMock) -> list[dict]:
    """Every frame passed to ``ws.send_json``, in order."""
    return [call.args[0] for call in ws.send_json.call_args_list]


def sent_types(ws: AsyncMock) -> list[str]:
    return [frame["type"] for frame in sent_frames(ws)]


# ---------------------------------------------------------------------------
# Response assertion helpers
# ---------------------------------------------------------------------------


def assert_error_response(response, status_code, error_substring=None):
    assert response.status_code == status_code
    body = response.json()
    assert "error" in body
    if error_substring:
        assert error_substring in body["error"]


def assert_success_response(response, status_code=200):
    assert response.status_code == status_code
    return response.json()
