"""Groups router -- group CRUD and durable membership.

Endpoints:
- POST /groups                      -> create_group
- GET  /groups                      -> list_groups
- GET  /groups/my                   -> list_my_groups
- GET  /groups/{group_id}           -> get_group
- POST /groups/{group_id}/join      -> join_group
- POST /groups/{group_id}/leave     -> leave_group
- POST /groups/{group_id}/members   -> add_member
"""

from __future__ import annotations

import logging

import aiosqlite
from fastapi import APIRouter, Depends

from chatter.dependencies import get_current_user, get_db, get_gateway
from chatter.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from chatter.models import (
    AddMemberRequest,
    CreateGroupRequest,
    GroupDetailResponse,
    GroupListResponse,
    GroupMemberResponse,
    GroupResponse,
    SuccessResponse,
    UserIdentity,
)
from chatter.services import group_service, user_service
from chatter.services.realtime_gateway import RealtimeGateway
from chatter.services.room_manager import group_room

logger = logging.getLogger(__name__)

router = APIRouter()


async def _load_group(db: aiosqlite.Connection, group_id: int) -> dict:
    group = await group_service.find_group_by_id(db, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


async def _detail(db: aiosqlite.Connection, group: dict) -> GroupDetailResponse:
    members = await group_service.get_members(db, group["id"])
    return GroupDetailResponse(
        group=GroupResponse(**group),
        members=[GroupMemberResponse(**member) for member in members],
    )


# ---------------------------------------------------------------------------
# POST /groups
# ---------------------------------------------------------------------------


@router.post("", status_code=201, response_model=GroupDetailResponse)
async def create_group(
    body: CreateGroupRequest,
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> GroupDetailResponse:
    """Create a group; the creator is always a member. Unknown member ids are skipped."""
    group = await group_service.create_group(
        db, name=body.name, description=body.description, created_by=user.user_id
    )
    for member_id in body.member_ids:
        if member_id == user.user_id:
            continue
        if await user_service.find_user_by_id(db, member_id) is None:
            logger.warning("Skipping unknown member %d for group %d", member_id, group["id"])
            continue
        await group_service.add_member(db, group["id"], member_id)

    return await _detail(db, group)


# ---------------------------------------------------------------------------
# GET /groups, GET /groups/my
# ---------------------------------------------------------------------------


@router.get("", response_model=GroupListResponse)
async def list_groups(
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> GroupListResponse:
    groups = await group_service.list_groups(db)
    return GroupListResponse(groups=[GroupResponse(**g) for g in groups])


@router.get("/my", response_model=GroupListResponse)
async def list_my_groups(
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> GroupListResponse:
    groups = await group_service.list_groups_for_user(db, user.user_id)
    return GroupListResponse(groups=[GroupResponse(**g) for g in groups])


# ---------------------------------------------------------------------------
# GET /groups/{group_id}
# ---------------------------------------------------------------------------


@router.get("/{group_id}", response_model=GroupDetailResponse)
async def get_group(
    group_id: int,
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> GroupDetailResponse:
    group = await _load_group(db, group_id)
    return await _detail(db, group)


# ---------------------------------------------------------------------------
# POST /groups/{group_id}/join
# ---------------------------------------------------------------------------


@router.post("/{group_id}/join", response_model=GroupDetailResponse)
async def join_group(
    group_id: int,
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> GroupDetailResponse:
    """Become a member. Receiving realtime pushes still needs a ``join_group`` event."""
    group = await _load_group(db, group_id)
    # add_member is the membership check: an existing row is ignored, not duplicated.
    if not await group_service.add_member(db, group_id, user.user_id):
        raise ConflictError("You are already a member of this group")
    return await _detail(db, group)


# ---------------------------------------------------------------------------
# POST /groups/{group_id}/leave
# ---------------------------------------------------------------------------


@router.post("/{group_id}/leave", response_model=SuccessResponse)
async def leave_group(
    group_id: int,
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
    gateway: RealtimeGateway = Depends(get_gateway),
) -> SuccessResponse:
    """Drop membership and stop this user's live connections receiving the group."""
    group = await _load_group(db, group_id)
    if group["created_by"] == user.user_id:
        raise ValidationError("Group creator cannot leave the group")
    if not await group_service.is_member(db, group_id, user.user_id):
        raise ValidationError("You are not a member of this group")

    await group_service.remove_member(db, group_id, user.user_id)
    gateway.unsubscribe_user(user.user_id, group_room(group_id))
    return SuccessResponse(message="Left group successfully")


# ---------------------------------------------------------------------------
# POST /groups/{group_id}/members
# ---------------------------------------------------------------------------


@router.post("/{group_id}/members", response_model=SuccessResponse)
async def add_member(
    group_id: int,
    body: AddMemberRequest,
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> SuccessResponse:
    """Only the group creator can add members."""
    group = await _load_group(db, group_id)
    if group["created_by"] != user.user_id:
        raise AuthorizationError("Only group creator can add members")
    if await user_service.find_user_by_id(db, body.user_id) is None:
        raise NotFoundError("User not found")
    if not await group_service.add_member(db, group_id, body.user_id):
        raise ConflictError("User is already a member of this group")
    return SuccessResponse(message="Member added successfully")
