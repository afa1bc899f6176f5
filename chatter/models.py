"""Pydantic request/response models for the Chatter REST API and realtime events.

The ``Send*Request`` models double as the payload schema for the matching
inbound WebSocket events so both transports validate identically.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator

# Ids in request bodies and event payloads: positive JSON integers, never booleans.
EntityId = Annotated[int, Field(strict=True, gt=0)]


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UserIdentity:
    """Who is on the other end of a connection or request.

    Resolved once from a verified session token; immutable afterwards.
    """

    user_id: int
    username: str


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Body for ``POST /auth/register``."""

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    """Body for ``POST /auth/login``."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class CreateGroupRequest(BaseModel):
    """Body for ``POST /groups``."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    member_ids: list[EntityId] = Field(default_factory=list)


class AddMemberRequest(BaseModel):
    """Body for ``POST /groups/{id}/members``."""

    user_id: EntityId


class SendDirectMessageRequest(BaseModel):
    """Body for ``POST /messages/direct`` and the ``send_direct_message`` event."""

    recipient_id: EntityId
    content: str = Field(..., min_length=1)


class SendGroupMessageRequest(BaseModel):
    """Body for ``POST /messages/group`` and the ``send_group_message`` event."""

    group_id: EntityId
    content: str = Field(..., min_length=1)


class SendMessageRequest(BaseModel):
    """Body for ``POST /messages``: exactly one of recipient_id / group_id."""

    content: str = Field(..., min_length=1)
    recipient_id: EntityId | None = None
    group_id: EntityId | None = None

    @model_validator(mode="after")
    def _exactly_one_target(self) -> SendMessageRequest:
        if (self.recipient_id is None) == (self.group_id is None):
            raise ValueError(
                "Either recipient_id (for direct message) or group_id "
                "(for group message) must be provided, but not both"
            )
        return self


# ---------------------------------------------------------------------------
# Realtime inbound events
# ---------------------------------------------------------------------------


class GroupRoomEvent(BaseModel):
    """Payload of ``join_group`` / ``leave_group``."""

    group_id: EntityId


class TypingEvent(BaseModel):
    """Payload of ``typing_start`` / ``typing_stop``."""

    type: Literal["direct", "group"]
    recipient_id: EntityId | None = None
    group_id: EntityId | None = None

    @model_validator(mode="after")
    def _target_matches_type(self) -> TypingEvent:
        if self.type == "direct" and self.recipient_id is None:
            raise ValueError("recipient_id is required for direct typing events")
        if self.type == "group" and self.group_id is None:
            raise ValueError("group_id is required for group typing events")
        return self


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user."""

    id: int
    username: str
    created_at: datetime | None = None


class AuthResponse(BaseModel):
    """Response for ``POST /auth/register`` and ``POST /auth/login``."""

    message: str
    token: str
    user: UserResponse


class UserListResponse(BaseModel):
    users: list[UserResponse]


class GroupResponse(BaseModel):
    """A single group row."""

    id: int
    name: str
    description: str | None = None
    created_by: int | None = None
    created_at: datetime
    updated_at: datetime


class GroupMemberResponse(BaseModel):
    id: int
    username: str
    joined_at: datetime


class GroupListResponse(BaseModel):
    groups: list[GroupResponse]


class GroupDetailResponse(BaseModel):
    """Response for ``GET /groups/{id}`` and ``POST /groups``."""

    group: GroupResponse
    members: list[GroupMemberResponse]


class MessageResponse(BaseModel):
    """A persisted message enriched with usernames."""

    id: int
    content: str
    sender_id: int
    recipient_id: int | None = None
    group_id: int | None = None
    created_at: datetime
    sender_username: str
    group_name: str | None = None
    recipient_username: str | None = None


class SendMessageResponse(BaseModel):
    """Response for the message-send endpoints."""

    message: str = "Message sent successfully"
    data: MessageResponse


class DirectHistoryResponse(BaseModel):
    messages: list[MessageResponse]
    other_user: UserResponse


class GroupHistoryResponse(BaseModel):
    messages: list[MessageResponse]
    group: GroupResponse


class MessageListResponse(BaseModel):
    messages: list[MessageResponse]


class ConversationSummary(BaseModel):
    """One entry in the conversation sidebar: a DM peer or a group."""

    type: Literal["direct", "group"]
    id: int
    name: str
    description: str | None = None
    last_message_at: datetime


class ConversationListResponse(BaseModel):
    conversations: list[ConversationSummary]


class SuccessResponse(BaseModel):
    """Generic success response."""

    success: bool = True
    message: str | None = None
