"""FastAPI dependency injection functions.

Provides:
- ``get_db(request)``: Returns a database connection from the pool.
- ``get_current_user(request, db)``: Validates the bearer token, returns a ``UserIdentity``.
- ``get_gateway(request)``: Returns the process-wide ``RealtimeGateway``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import aiosqlite
from fastapi import Depends, HTTPException, Request
from starlette.requests import HTTPConnection

from chatter.database import DatabasePool
from chatter.models import UserIdentity
from chatter.services import auth_service
from chatter.services.realtime_gateway import RealtimeGateway

SESSION_COOKIE = "session_token"


# ---------------------------------------------------------------------------
# Token extraction
# ---------------------------------------------------------------------------


def extract_bearer_token(connection: HTTPConnection) -> str | None:
    """Return the credential from ``Authorization: Bearer`` or the session cookie.

    Works for both HTTP requests and WebSocket handshakes.
    """
    header = connection.headers.get("authorization")
    if header and header.startswith("Bearer "):
        token = header[len("Bearer "):].strip()
        if token:
            return token
    return connection.cookies.get(SESSION_COOKIE)


# ---------------------------------------------------------------------------
# get_db
# ---------------------------------------------------------------------------


async def get_db(request: Request) -> AsyncIterator[aiosqlite.Connection]:
    """Yield the connection for this request.

    Mutating methods get the pool's writer; reads borrow a pooled reader.
    Without a ``DatabasePool`` (tests) the shared ``app.state.db`` is used.
    """
    pool = getattr(request.app.state, "db_pool", None)
    if not isinstance(pool, DatabasePool):
        yield request.app.state.db
    elif request.method in ("POST", "PATCH", "DELETE", "PUT"):
        yield pool.writer
    else:
        async with pool.reading() as conn:
            yield conn


# ---------------------------------------------------------------------------
# get_current_user
# ---------------------------------------------------------------------------


async def get_current_user(
    request: Request,
    db: aiosqlite.Connection = Depends(get_db),
) -> UserIdentity:
    """Validate the bearer token via auth_service and return the identity.

    Raises ``HTTPException(401)`` if the token is missing or the session is
    invalid/expired.
    """
    token = extract_bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Access token required")

    identity = await auth_service.validate_session(db, token)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return identity


# ---------------------------------------------------------------------------
# get_gateway
# ---------------------------------------------------------------------------


def get_gateway(request: Request) -> RealtimeGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Realtime gateway unavailable")
    return gateway
