"""Shared pytest fixtures for backend tests.

Provides:
- ``fresh_db``: in-memory SQLite initialised through ``init_db_schema``
- ``alice`` / ``bob`` / ``superadmin``: pre-seeded user records
- ``alice_session``: a valid session token for ``alice``
- ``gateway``: a started ``RealtimeGateway`` backed by ``fresh_db``
- ``authed_client`` / ``bob_client`` / ``root_client`` / ``anon_client``: httpx clients
  against the app with the matching session cookie (or none)
"""

from __future__ import annotations

import os

# Settings are read at import time by some modules; keep tests off any real .env values.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SUPERADMIN_USERNAME", "superadmin")

from chatter.config import get_settings  # noqa: E402

get_settings.cache_clear()

import aiosqlite  # noqa: E402
import pytest_asyncio  # noqa: E402

from chatter.database import init_db_schema  # noqa: E402
from chatter.services.auth_service import SessionIdentityVerifier  # noqa: E402
from chatter.services.persistence import PersistenceGateway  # noqa: E402
from chatter.services.realtime_gateway import RealtimeGateway  # noqa: E402
from tests.factories import insert_session, insert_user, make_session, make_user  # noqa: E402


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def fresh_db():
    """In-memory SQLite database with the full Chatter schema."""
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await init_db_schema(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def alice(fresh_db):
    user = make_user(username="alice")
    user["id"] = await insert_user(fresh_db, user)
    return user


@pytest_asyncio.fixture
async def bob(fresh_db):
    user = make_user(username="bob")
    user["id"] = await insert_user(fresh_db, user)
    return user


@pytest_asyncio.fixture
async def superadmin(fresh_db):
    user = make_user(username="superadmin")
    user["id"] = await insert_user(fresh_db, user)
    return user


@pytest_asyncio.fixture
async def alice_session(fresh_db, alice):
    """A valid session for ``alice``, inserted into ``fresh_db``."""
    session = make_session(user_id=alice["id"])
    await insert_session(fresh_db, session)
    return session


# ---------------------------------------------------------------------------
# Realtime gateway
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def gateway(fresh_db):
    """A running gateway wired to the real persistence and session verifier."""
    gw = RealtimeGateway(PersistenceGateway(fresh_db), SessionIdentityVerifier(fresh_db))
    await gw.start()
    yield gw
    await gw.stop()


# ---------------------------------------------------------------------------
# HTTP clients
# ---------------------------------------------------------------------------


def _client(fresh_db, gateway, token: str | None = None):
    """httpx.AsyncClient pointing at the FastAPI app.

    ``app.state.db`` and ``app.state.gateway`` are patched so the
    application's dependencies use the test database and gateway.
    """
    from httpx import ASGITransport, AsyncClient

    from chatter.main import app

    app.state.db = fresh_db
    app.state.gateway = gateway
    cookies = {"session_token": token} if token else None
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test", cookies=cookies)


@pytest_asyncio.fixture
async def authed_client(fresh_db, gateway, alice_session):
    """Client with ``alice``'s session cookie set."""
    async with _client(fresh_db, gateway, alice_session["id"]) as client:
        yield client


@pytest_asyncio.fixture
async def anon_client(fresh_db, gateway):
    """Client with no credentials, for register/login and 401 checks."""
    async with _client(fresh_db, gateway) as client:
        yield client


@pytest_asyncio.fixture
async def bob_client(fresh_db, gateway, bob):
    session = make_session(user_id=bob["id"])
    await insert_session(fresh_db, session)
    async with _client(fresh_db, gateway, session["id"]) as client:
        yield client


@pytest_asyncio.fixture
async def root_client(fresh_db, gateway, superadmin):
    session = make_session(user_id=superadmin["id"])
    await insert_session(fresh_db, session)
    async with _client(fresh_db, gateway, session["id"]) as client:
        yield client
