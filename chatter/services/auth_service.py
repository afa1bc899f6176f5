"""Authentication service: password accounts and bearer session tokens.

Provides:
- ``hash_password(password)`` / ``verify_password(password, password_hash)``: Argon2id.
- ``register_user(db, username, password)``: Creates an account.
- ``authenticate_user(db, username, password)``: Checks credentials.
- ``create_session(db, user_id)``: Creates a new session, returns token.
- ``validate_session(db, session_token)``: Validates and refreshes a session.
- ``delete_session(db, session_token)``: Deletes a session.
- ``SessionIdentityVerifier``: The identity collaborator used by the realtime gateway.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import aiosqlite
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from chatter.config import get_settings
from chatter.exceptions import AuthenticationError, ConflictError
from chatter.models import UserIdentity

logger = logging.getLogger(__name__)

_hasher = PasswordHasher()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


async def hash_password(password: str) -> str:
    """Hash *password* with Argon2id off the event loop."""
    return await asyncio.to_thread(_hasher.hash, password)


async def verify_password(password: str, password_hash: str) -> bool:
    """Return ``True`` if *password* matches *password_hash*."""
    try:
        return await asyncio.to_thread(_hasher.verify, password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


async def register_user(db: aiosqlite.Connection, username: str, password: str) -> dict:
    """Create a user account and return ``{id, username, created_at}``.

    Raises ``ConflictError`` if the username is taken.
    """
    cursor = await db.execute("SELECT id FROM users WHERE username = ?", (username,))
    if await cursor.fetchone() is not None:
        raise ConflictError("User with this username already exists")

    password_hash = await hash_password(password)
    now = _utcnow().isoformat()
    # The pre-check above can race with a concurrent registration.
    try:
        cursor = await db.execute(
            "INSERT INTO users (username, password_hash, created_at, updated_at) "
            "VALUES (?, ?, ?, ?)",
            (username, password_hash, now, now),
        )
    except aiosqlite.IntegrityError as exc:
        raise ConflictError("User with this username already exists") from exc
    await db.commit()
    logger.info("Registered user %s (id=%d)", username, cursor.lastrowid)
    return {"id": cursor.lastrowid, "username": username, "created_at": now}


async def authenticate_user(db: aiosqlite.Connection, username: str, password: str) -> dict:
    """Return the user dict for valid credentials.

    Raises ``AuthenticationError`` for an unknown username or a wrong password;
    the message does not reveal which.
    """
    cursor = await db.execute(
        "SELECT id, username, password_hash, created_at FROM users WHERE username = ?",
        (username,),
    )
    row = await cursor.fetchone()
    if row is None or not await verify_password(password, row["password_hash"]):
        raise AuthenticationError("Invalid credentials")

    return {"id": row["id"], "username": row["username"], "created_at": row["created_at"]}


# ---------------------------------------------------------------------------
# Session management
# ---------------------------------------------------------------------------


async def create_session(
    db: aiosqlite.Connection, user_id: int, *, duration_days: int | None = None
) -> str:
    """Create a new session for *user_id*, return the session token (UUID).

    The token doubles as the session ``id`` in the ``sessions`` table.
    """
    if duration_days is None:
        duration_days = get_settings().session_duration_days
    token = str(uuid4())
    now = _utcnow()
    expires_at = now + timedelta(days=duration_days)

    await db.execute(
        "INSERT INTO sessions (id, user_id, created_at, expires_at) VALUES (?, ?, ?, ?)",
        (token, user_id, now.isoformat(), expires_at.isoformat()),
    )
    await db.commit()
    return token


async def validate_session(
    db: aiosqlite.Connection,
    session_token: str | None,
    *,
    duration_days: int | None = None,
) -> UserIdentity | None:
    """Look up *session_token*, check it is not expired, refresh expiry.

    Returns the ``UserIdentity`` on success, or ``None`` if the session is
    missing, unknown or expired.
    """
    if not session_token:
        return None
    if duration_days is None:
        duration_days = get_settings().session_duration_days

    now = _utcnow()

    cursor = await db.execute(
        "SELECT s.expires_at, u.id, u.username "
        "FROM sessions s "
        "JOIN users u ON s.user_id = u.id "
        "WHERE s.id = ?",
        (session_token,),
    )
    row = await cursor.fetchone()

    if row is None:
        return None

    expires_at = datetime.fromisoformat(row["expires_at"])
    if expires_at <= now:
        return None

    new_expiry = now + timedelta(days=duration_days)
    await db.execute(
        "UPDATE sessions SET expires_at = ? WHERE id = ?",
        (new_expiry.isoformat(), session_token),
    )
    await db.commit()

    return UserIdentity(user_id=row["id"], username=row["username"])


async def delete_session(db: aiosqlite.Connection, session_token: str) -> None:
    """Delete a session row. No-op if the session does not exist."""
    await db.execute("DELETE FROM sessions WHERE id = ?", (session_token,))
    await db.commit()


# ---------------------------------------------------------------------------
# Identity collaborator
# ---------------------------------------------------------------------------


class SessionIdentityVerifier:
    """Issues and verifies bearer tokens backed by the ``sessions`` table."""

    def __init__(self, db: aiosqlite.Connection, *, duration_days: int | None = None) -> None:
        self._db = db
        self._duration_days = duration_days

    async def verify(self, token: str | None) -> UserIdentity:
        """Resolve *token* to an identity or raise ``AuthenticationError``."""
        if not token:
            raise AuthenticationError("Authentication error: No token provided")
        identity = await validate_session(self._db, token, duration_days=self._duration_days)
        if identity is None:
            raise AuthenticationError("Authentication error: Invalid token")
        return identity

    async def issue(self, user_id: int) -> str:
        return await create_session(self._db, user_id, duration_days=self._duration_days)
