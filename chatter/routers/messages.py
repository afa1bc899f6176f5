"""Messages router -- sending (persist then broadcast) and history.

Every send endpoint goes through ``RealtimeGateway``'s send routine, the
same one the WebSocket ``send_*_message`` events use, so an HTTP write is
pushed to live connections exactly like a realtime one.

Endpoints:
- POST /messages                     -> send_message (exactly one target)
- POST /messages/direct              -> send_direct_message
- POST /messages/group               -> send_group_message
- GET  /messages/direct/{user_id}    -> direct_history
- GET  /messages/group/{group_id}    -> group_history
- GET  /messages/conversations       -> list_conversations
- GET  /messages/all                 -> all_messages (superadmin only)
"""

from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends, Query

from chatter.config import get_settings
from chatter.dependencies import get_current_user, get_db, get_gateway
from chatter.exceptions import AuthorizationError, NotFoundError
from chatter.models import (
    ConversationListResponse,
    ConversationSummary,
    DirectHistoryResponse,
    GroupHistoryResponse,
    GroupResponse,
    MessageListResponse,
    MessageResponse,
    SendDirectMessageRequest,
    SendGroupMessageRequest,
    SendMessageRequest,
    SendMessageResponse,
    UserIdentity,
    UserResponse,
)
from chatter.services import group_service, message_service, user_service
from chatter.services.realtime_gateway import RealtimeGateway

router = APIRouter()


def _history_limit(limit: int | None) -> int:
    return limit if limit is not None else get_settings().default_history_limit


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------


@router.post("", status_code=201, response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    user: UserIdentity = Depends(get_current_user),
    gateway: RealtimeGateway = Depends(get_gateway),
) -> SendMessageResponse:
    """Send to a user or a group; a body naming both or neither is rejected (400)."""
    message = await gateway.send_message(
        user, content=body.content, recipient_id=body.recipient_id, group_id=body.group_id
    )
    return SendMessageResponse(data=MessageResponse(**message))


@router.post("/direct", status_code=201, response_model=SendMessageResponse)
async def send_direct_message(
    body: SendDirectMessageRequest,
    user: UserIdentity = Depends(get_current_user),
    gateway: RealtimeGateway = Depends(get_gateway),
) -> SendMessageResponse:
    message = await gateway.send_direct_message(user, body.recipient_id, body.content)
    return SendMessageResponse(data=MessageResponse(**message))


@router.post("/group", status_code=201, response_model=SendMessageResponse)
async def send_group_message(
    body: SendGroupMessageRequest,
    user: UserIdentity = Depends(get_current_user),
    gateway: RealtimeGateway = Depends(get_gateway),
) -> SendMessageResponse:
    message = await gateway.send_group_message(user, body.group_id, body.content)
    return SendMessageResponse(data=MessageResponse(**message))


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/direct/{user_id}", response_model=DirectHistoryResponse)
async def direct_history(
    user_id: int,
    limit: int | None = Query(default=None, ge=1, le=500),
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> DirectHistoryResponse:
    other = await user_service.find_user_by_id(db, user_id)
    if other is None:
        raise NotFoundError("User not found")

    rows = await message_service.get_direct_messages(
        db, user.user_id, user_id, _history_limit(limit)
    )
    return DirectHistoryResponse(
        messages=[MessageResponse(**row) for row in rows],
        other_user=UserResponse(**other),
    )


@router.get("/group/{group_id}", response_model=GroupHistoryResponse)
async def group_history(
    group_id: int,
    limit: int | None = Query(default=None, ge=1, le=500),
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> GroupHistoryResponse:
    """Members only."""
    group = await group_service.find_group_by_id(db, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    if not await group_service.is_member(db, group_id, user.user_id):
        raise AuthorizationError("You are not a member of this group")

    rows = await message_service.get_group_messages(db, group_id, _history_limit(limit))
    return GroupHistoryResponse(
        messages=[MessageResponse(**row) for row in rows],
        group=GroupResponse(**group),
    )


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> ConversationListResponse:
    rows = await message_service.get_user_conversations(db, user.user_id)
    return ConversationListResponse(conversations=[ConversationSummary(**row) for row in rows])


@router.get("/all", response_model=MessageListResponse)
async def all_messages(
    limit: int = Query(default=100, ge=1, le=1000),
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> MessageListResponse:
    """Newest-first feed of every message, for the superadmin monitor."""
    if user.username != get_settings().superadmin_username:
        raise AuthorizationError("Superadmin access required")
    rows = await message_service.get_all_messages(db, limit)
    return MessageListResponse(messages=[MessageResponse(**row) for row in rows])
