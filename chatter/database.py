"""Database connection management and schema initialisation.

Provides:
- ``init_db_schema(conn)``: Enable PRAGMAs, create the 5 tables and their indexes.
- ``DatabasePool``: A single writer plus a queue of readers (``reading()``).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Schema SQL
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS users (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    username        TEXT NOT NULL UNIQUE,
    password_hash   TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id              TEXT PRIMARY KEY,
    user_id         INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at      TEXT NOT NULL,
    expires_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS groups (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT NOT NULL,
    description     TEXT,
    created_by      INTEGER REFERENCES users(id),
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS group_members (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    group_id        INTEGER NOT NULL REFERENCES groups(id) ON DELETE CASCADE,
    user_id         INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    joined_at       TEXT NOT NULL,
    UNIQUE(group_id, user_id)
);

CREATE TABLE IF NOT EXISTS messages (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    content         TEXT NOT NULL,
    sender_id       INTEGER NOT NULL REFERENCES users(id),
    recipient_id    INTEGER REFERENCES users(id),
    group_id        INTEGER REFERENCES groups(id) ON DELETE CASCADE,
    created_at      TEXT NOT NULL,
    CHECK (
        (recipient_id IS NOT NULL AND group_id IS NULL) OR
        (recipient_id IS NULL AND group_id IS NOT NULL)
    )
);

CREATE INDEX IF NOT EXISTS idx_sessions_user_id ON sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_messages_sender ON messages(sender_id);
CREATE INDEX IF NOT EXISTS idx_messages_recipient ON messages(recipient_id);
CREATE INDEX IF NOT EXISTS idx_messages_group ON messages(group_id);
CREATE INDEX IF NOT EXISTS idx_messages_created_at ON messages(created_at);
CREATE INDEX IF NOT EXISTS idx_group_members_user ON group_members(user_id);
CREATE INDEX IF NOT EXISTS idx_group_members_group ON group_members(group_id);
"""


# ---------------------------------------------------------------------------
# Connection Pool
# ---------------------------------------------------------------------------


class DatabasePool:
    """One writer plus a queue of readers over the same SQLite file.

    WAL mode lets readers run alongside the single writer. Every mutation
    (HTTP writes, sessions, realtime message persistence) goes through
    ``writer``; GET handlers borrow a reader with ``reading()``.
    """

    def __init__(self, db_path: str, pool_size: int = 5):
        self.db_path = db_path
        self.pool_size = pool_size
        self._readers: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=pool_size)
        self._writer: aiosqlite.Connection | None = None

    @classmethod
    def from_url(cls, database_url: str, pool_size: int = 5) -> DatabasePool:
        """Build a pool from a ``sqlite:///path`` URL."""
        return cls(database_url.removeprefix("sqlite:///"), pool_size=pool_size)

    async def _open(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA foreign_keys=ON")
        return conn

    async def initialize(self) -> None:
        """Open the writer (creating the schema) and fill the reader queue."""
        self._writer = await self._open()
        await init_db_schema(self._writer)
        for _ in range(self.pool_size):
            await self._readers.put(await self._open())
        logger.info("Database pool ready at %s (%d readers)", self.db_path, self.pool_size)

    async def close(self) -> None:
        if self._writer is not None:
            await self._writer.close()
            self._writer = None
        while not self._readers.empty():
            await self._readers.get_nowait().close()

    @property
    def writer(self) -> aiosqlite.Connection:
        if self._writer is None:
            raise RuntimeError("Database pool is not initialized")
        return self._writer

    @asynccontextmanager
    async def reading(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a reader; it goes back to the queue when the block exits."""
        conn = await self._readers.get()
        try:
            yield conn
        finally:
            self._readers.put_nowait(conn)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def init_db_schema(conn: aiosqlite.Connection) -> None:
    """Initialise the database: enable PRAGMAs, create tables and indexes.

    The caller is responsible for opening and closing the connection.
    """
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.executescript(_SCHEMA_SQL)
    await conn.commit()
