"""Message persistence and history queries.

Every message targets exactly one of a recipient user or a group. The
``messages`` table enforces this with a CHECK constraint; ``create_message``
re-validates it first so a bad call never reaches the store.
"""

from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from chatter.exceptions import ValidationError

_WITH_SENDER = (
    "SELECT m.*, u.username AS sender_username "
    "FROM messages m "
    "JOIN users u ON m.sender_id = u.id "
)

_WITH_DETAILS = (
    "SELECT m.*, u.username AS sender_username, "
    "       g.name AS group_name, ru.username AS recipient_username "
    "FROM messages m "
    "JOIN users u ON m.sender_id = u.id "
    "LEFT JOIN groups g ON m.group_id = g.id "
    "LEFT JOIN users ru ON m.recipient_id = ru.id "
)


async def create_message(
    db: aiosqlite.Connection,
    *,
    content: str,
    sender_id: int,
    recipient_id: int | None = None,
    group_id: int | None = None,
) -> dict:
    """Insert a message and return it enriched with ``sender_username``.

    Raises ``ValidationError`` unless exactly one of *recipient_id* /
    *group_id* is given.
    """
    if (recipient_id is None) == (group_id is None):
        raise ValidationError("A message needs exactly one of recipient_id or group_id")

    now = datetime.now(timezone.utc).replace(tzinfo=None).isoformat()
    cursor = await db.execute(
        "INSERT INTO messages (content, sender_id, recipient_id, group_id, created_at) "
        "VALUES (?, ?, ?, ?, ?)",
        (content, sender_id, recipient_id, group_id, now),
    )
    await db.commit()
    return await find_message(db, cursor.lastrowid)


async def find_message(db: aiosqlite.Connection, message_id: int) -> dict | None:
    cursor = await db.execute(_WITH_SENDER + "WHERE m.id = ?", (message_id,))
    row = await cursor.fetchone()
    return dict(row) if row is not None else None


async def find_message_with_details(db: aiosqlite.Connection, message_id: int) -> dict | None:
    """Like ``find_message`` plus ``group_name`` and ``recipient_username``."""
    cursor = await db.execute(_WITH_DETAILS + "WHERE m.id = ?", (message_id,))
    row = await cursor.fetchone()
    return dict(row) if row is not None else None


async def get_direct_messages(
    db: aiosqlite.Connection, user_a: int, user_b: int, limit: int = 50
) -> list[dict]:
    """The latest *limit* messages between two users, oldest first."""
    cursor = await db.execute(
        _WITH_SENDER
        + "WHERE ((m.sender_id = ? AND m.recipient_id = ?) "
        "    OR (m.sender_id = ? AND m.recipient_id = ?)) "
        "ORDER BY m.created_at DESC, m.id DESC "
        "LIMIT ?",
        (user_a, user_b, user_b, user_a, limit),
    )
    rows = [dict(row) for row in await cursor.fetchall()]
    rows.reverse()
    return rows


async def get_group_messages(db: aiosqlite.Connection, group_id: int, limit: int = 50) -> list[dict]:
    """The latest *limit* messages of a group, oldest first."""
    cursor = await db.execute(
        _WITH_SENDER + "WHERE m.group_id = ? ORDER BY m.created_at DESC, m.id DESC LIMIT ?",
        (group_id, limit),
    )
    rows = [dict(row) for row in await cursor.fetchall()]
    rows.reverse()
    return rows


async def get_all_messages(db: aiosqlite.Connection, limit: int = 100) -> list[dict]:
    """Newest-first feed of every message with full details (monitor view)."""
    cursor = await db.execute(
        _WITH_DETAILS + "ORDER BY m.created_at DESC, m.id DESC LIMIT ?",
        (limit,),
    )
    return [dict(row) for row in await cursor.fetchall()]


async def get_user_conversations(db: aiosqlite.Connection, user_id: int) -> list[dict]:
    """Direct peers and groups the user has message history with.

    Returns dicts ``{type, id, name, description, last_message_at}`` sorted by
    ``last_message_at`` descending.
    """
    cursor = await db.execute(
        "SELECT 'direct' AS type, u.id AS id, u.username AS name, "
        "       NULL AS description, c.last_message_at "
        "FROM ("
        "  SELECT CASE WHEN m.sender_id = ? THEN m.recipient_id ELSE m.sender_id END AS other_id, "
        "         MAX(m.created_at) AS last_message_at "
        "  FROM messages m "
        "  WHERE m.group_id IS NULL AND (m.sender_id = ? OR m.recipient_id = ?) "
        "  GROUP BY other_id"
        ") c "
        "JOIN users u ON u.id = c.other_id",
        (user_id, user_id, user_id),
    )
    conversations = [dict(row) for row in await cursor.fetchall()]

    cursor = await db.execute(
        "SELECT 'group' AS type, g.id AS id, g.name AS name, "
        "       g.description AS description, MAX(m.created_at) AS last_message_at "
        "FROM messages m "
        "JOIN groups g ON m.group_id = g.id "
        "JOIN group_members gm ON g.id = gm.group_id "
        "WHERE gm.user_id = ? "
        "GROUP BY g.id, g.name, g.description",
        (user_id,),
    )
    conversations.extend(dict(row) for row in await cursor.fetchall())

    conversations.sort(key=lambda c: c["last_message_at"], reverse=True)
    return conversations
