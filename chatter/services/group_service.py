"""Group and membership persistence.

Membership here is the durable, authorization-relevant relation. Realtime
room subscriptions (``group_<id>``) are tracked separately by the
``RoomManager`` and never imply membership.
"""

from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite


def _now() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat()


async def create_group(
    db: aiosqlite.Connection,
    *,
    name: str,
    description: str | None,
    created_by: int,
) -> dict:
    """Insert a group and add the creator as its first member."""
    now = _now()
    cursor = await db.execute(
        "INSERT INTO groups (name, description, created_by, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?)",
        (name, description, created_by, now, now),
    )
    group_id = cursor.lastrowid
    await db.execute(
        "INSERT INTO group_members (group_id, user_id, joined_at) VALUES (?, ?, ?)",
        (group_id, created_by, now),
    )
    await db.commit()
    return {
        "id": group_id,
        "name": name,
        "description": description,
        "created_by": created_by,
        "created_at": now,
        "updated_at": now,
    }


async def find_group_by_id(db: aiosqlite.Connection, group_id: int) -> dict | None:
    cursor = await db.execute("SELECT * FROM groups WHERE id = ?", (group_id,))
    row = await cursor.fetchone()
    return dict(row) if row is not None else None


async def list_groups(db: aiosqlite.Connection) -> list[dict]:
    cursor = await db.execute("SELECT * FROM groups ORDER BY name")
    return [dict(row) for row in await cursor.fetchall()]


async def list_groups_for_user(db: aiosqlite.Connection, user_id: int) -> list[dict]:
    cursor = await db.execute(
        "SELECT g.* FROM groups g "
        "JOIN group_members gm ON g.id = gm.group_id "
        "WHERE gm.user_id = ? "
        "ORDER BY g.name",
        (user_id,),
    )
    return [dict(row) for row in await cursor.fetchall()]


async def add_member(db: aiosqlite.Connection, group_id: int, user_id: int) -> bool:
    """Add *user_id* to *group_id*. Returns False if they were already a member."""
    cursor = await db.execute(
        "INSERT OR IGNORE INTO group_members (group_id, user_id, joined_at) VALUES (?, ?, ?)",
        (group_id, user_id, _now()),
    )
    await db.commit()
    return cursor.rowcount == 1


async def remove_member(db: aiosqlite.Connection, group_id: int, user_id: int) -> None:
    await db.execute(
        "DELETE FROM group_members WHERE group_id = ? AND user_id = ?",
        (group_id, user_id),
    )
    await db.commit()


async def get_members(db: aiosqlite.Connection, group_id: int) -> list[dict]:
    """Members as ``{id, username, joined_at}`` ordered by username."""
    cursor = await db.execute(
        "SELECT u.id, u.username, gm.joined_at "
        "FROM group_members gm "
        "JOIN users u ON gm.user_id = u.id "
        "WHERE gm.group_id = ? "
        "ORDER BY u.username",
        (group_id,),
    )
    return [dict(row) for row in await cursor.fetchall()]


async def is_member(db: aiosqlite.Connection, group_id: int, user_id: int) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM group_members WHERE group_id = ? AND user_id = ?",
        (group_id, user_id),
    )
    return await cursor.fetchone() is not None
