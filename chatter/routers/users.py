"""Users router: directory listing and search."""

from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends, Query

from chatter.dependencies import get_current_user, get_db
from chatter.exceptions import NotFoundError
from chatter.models import UserIdentity, UserListResponse, UserResponse
from chatter.services import user_service

router = APIRouter()


@router.get("/search", response_model=UserListResponse)
async def search_users(
    q: str = Query(..., min_length=1),
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> UserListResponse:
    """Username search excluding the caller, capped at 10 results."""
    rows = await user_service.search_users(db, q, exclude_user_id=user.user_id)
    return UserListResponse(users=[UserResponse(**row) for row in rows])


@router.get("", response_model=UserListResponse)
async def list_users(
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> UserListResponse:
    rows = await user_service.list_users(db)
    return UserListResponse(users=[UserResponse(**row) for row in rows])


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> dict:
    record = await user_service.find_user_by_id(db, user_id)
    if record is None:
        raise NotFoundError("User not found")
    return {"user": UserResponse(**record).model_dump(mode="json")}
