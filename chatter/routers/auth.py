"""Auth router: registration, login, logout, current user."""

from __future__ import annotations

import aiosqlite
from fastapi import APIRouter, Depends, Request, Response

from chatter.config import get_settings
from chatter.dependencies import SESSION_COOKIE, extract_bearer_token, get_current_user, get_db
from chatter.exceptions import NotFoundError
from chatter.models import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    SuccessResponse,
    UserIdentity,
    UserResponse,
)
from chatter.services import auth_service, user_service

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _set_session_cookie(response: Response, token: str) -> None:
    """Set the session_token httpOnly cookie on *response*.

    Browsers send it on the WebSocket upgrade, so the UI does not need to put
    the token in the URL.
    """
    settings = get_settings()
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        max_age=settings.session_duration_days * 24 * 3600,
        path="/",
    )


def _clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(
        key=SESSION_COOKIE,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------


@router.post("/register", status_code=201, response_model=AuthResponse)
async def register(
    body: RegisterRequest,
    response: Response,
    db: aiosqlite.Connection = Depends(get_db),
) -> AuthResponse:
    """Create an account and log it in."""
    user = await auth_service.register_user(db, body.username, body.password)
    token = await auth_service.create_session(db, user["id"])
    _set_session_cookie(response, token)
    return AuthResponse(
        message="User registered successfully",
        token=token,
        user=UserResponse(**user),
    )


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=AuthResponse)
async def login(
    body: LoginRequest,
    response: Response,
    db: aiosqlite.Connection = Depends(get_db),
) -> AuthResponse:
    user = await auth_service.authenticate_user(db, body.username, body.password)
    token = await auth_service.create_session(db, user["id"])
    _set_session_cookie(response, token)
    return AuthResponse(message="Login successful", token=token, user=UserResponse(**user))


# ---------------------------------------------------------------------------
# POST /auth/logout
# ---------------------------------------------------------------------------


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    response: Response,
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> SuccessResponse:
    """Delete the current session and clear the cookie.

    Open WebSocket connections keep running until they disconnect; the
    token is only checked at handshake time.
    """
    token = extract_bearer_token(request)
    if token:
        await auth_service.delete_session(db, token)
    _clear_session_cookie(response)
    return SuccessResponse(message="Logged out")


# ---------------------------------------------------------------------------
# GET /auth/me
# ---------------------------------------------------------------------------


@router.get("/me")
async def me(
    user: UserIdentity = Depends(get_current_user),
    db: aiosqlite.Connection = Depends(get_db),
) -> dict:
    record = await user_service.find_user_by_id(db, user.user_id)
    if record is None:
        raise NotFoundError("User not found")
    return {"user": UserResponse(**record).model_dump(mode="json")}
