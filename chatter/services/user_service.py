"""User lookups. Account creation lives in ``auth_service``."""

from __future__ import annotations

import aiosqlite

_PUBLIC_COLUMNS = "id, username, created_at"


async def find_user_by_id(db: aiosqlite.Connection, user_id: int) -> dict | None:
    """Return ``{id, username, created_at}`` or ``None``."""
    cursor = await db.execute(
        f"SELECT {_PUBLIC_COLUMNS} FROM users WHERE id = ?", (user_id,)
    )
    row = await cursor.fetchone()
    return dict(row) if row is not None else None


async def find_user_by_username(db: aiosqlite.Connection, username: str) -> dict | None:
    cursor = await db.execute(
        f"SELECT {_PUBLIC_COLUMNS} FROM users WHERE username = ?", (username,)
    )
    row = await cursor.fetchone()
    return dict(row) if row is not None else None


async def list_users(db: aiosqlite.Connection) -> list[dict]:
    """All users ordered by username."""
    cursor = await db.execute(f"SELECT {_PUBLIC_COLUMNS} FROM users ORDER BY username")
    return [dict(row) for row in await cursor.fetchall()]


async def search_users(
    db: aiosqlite.Connection,
    query: str,
    *,
    exclude_user_id: int | None = None,
    limit: int = 10,
) -> list[dict]:
    """Case-insensitive substring match on username.

    SQLite's ``LIKE`` is case-insensitive for ASCII, matching the original
    ``ILIKE`` behaviour closely enough for usernames.
    """
    sql = f"SELECT {_PUBLIC_COLUMNS} FROM users WHERE username LIKE ?"
    params: list = [f"%{query}%"]
    if exclude_user_id is not None:
        sql += " AND id != ?"
        params.append(exclude_user_id)
    sql += " ORDER BY username LIMIT ?"
    params.append(limit)

    cursor = await db.execute(sql, params)
    return [dict(row) for row in await cursor.fetchall()]
