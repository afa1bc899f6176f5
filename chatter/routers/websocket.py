"""WebSocket endpoint for realtime events.

Provides:
- ``WS /ws?token=...``: Authenticate, join the gateway, heartbeat, receive loop.
"""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Query, WebSocket

from chatter.config import get_settings
from chatter.dependencies import extract_bearer_token
from chatter.exceptions import AuthenticationError
from chatter.services import ws_messages

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HEARTBEAT_INTERVAL: float = get_settings().heartbeat_interval
AUTH_FAILED_CLOSE_CODE = 4001

# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

router = APIRouter()


# ---------------------------------------------------------------------------
# Heartbeat task
# ---------------------------------------------------------------------------


async def _heartbeat(websocket: WebSocket) -> None:
    """Send periodic ping messages to keep the connection alive.

    Runs as a background task per WebSocket connection. If sending fails
    (connection dead), the task ends and disconnect cleanup takes over.
    """
    try:
        while True:
            await asyncio.sleep(HEARTBEAT_INTERVAL)
            await websocket.send_json(ws_messages.ping())
    except Exception:
        # Connection closed or errored; the session scope cleans up
        pass


def _decode_frame(text: str | None) -> object:
    """Parse a text frame; binary frames and invalid JSON decode to ``None``."""
    if text is None:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


# ---------------------------------------------------------------------------
# WS /ws?token=...
# ---------------------------------------------------------------------------


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(default=None),
) -> None:
    """WebSocket endpoint: authenticate, accept, heartbeat, receive loop.

    1. Resolve the token (query param, bearer header or session cookie)
    2. If invalid: close with 4001 before accepting, return
    3. Enter the gateway session (registry + personal room), then accept
    4. Start heartbeat task
    5. Dispatch each inbound frame in arrival order
    6. On disconnect: the session scope removes all realtime state
    """
    gateway = websocket.app.state.gateway

    if not token:
        token = extract_bearer_token(websocket)

    try:
        identity = await gateway.authenticate(token)
    except AuthenticationError as exc:
        logger.info("Rejected WebSocket handshake: %s", exc.message)
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason="Authentication failed")
        return

    # Registered before accept: once the client sees the handshake complete,
    # it is reachable by per-user and room delivery.
    async with gateway.session(websocket, identity) as connection:
        await websocket.accept()
        heartbeat_task = asyncio.create_task(_heartbeat(websocket))
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                # Awaited before the next read: per-connection arrival order.
                await gateway.dispatch(connection, _decode_frame(message.get("text")))
        finally:
            heartbeat_task.cancel()
            try:
                await heartbeat_task
            except asyncio.CancelledError:
                pass
