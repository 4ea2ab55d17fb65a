"""Wire contracts for chat relay events."""
from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class InboundEvent(str, enum.Enum):
    ENTER_ROOM = "enterRoom"
    MESSAGE = "message"
    TYPING = "typing"
    STOP_TYPING = "stopTyping"
    DISCONNECT = "disconnect"


class OutboundEvent(str, enum.Enum):
    JOIN_LEFT = "join_leftChat"
    USER_LIST = "userList"
    MESSAGE = "message"
    TYPING = "typing"
    STOP_TYPING = "stopTyping"
    ERROR = "errorMessage"


class Envelope(BaseModel):
    """A single frame on the socket: an event name and its payload."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class RoomPayload(BaseModel):
    """Payload shared by every inbound event."""

    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., min_length=1)
    chat_id: str = Field(..., min_length=1)
    text: str | None = None
    file_url: str | None = None
    file_type: str | None = None


class ChatMessage(BaseModel):
    user_id: str
    chat_id: str
    text: str | None = None
    file_url: str | None = None
    file_type: str | None = None


class Notice(BaseModel):
    user_id: str
    text: str
    time: str


class UserList(BaseModel):
    users: list[str]


class Signal(BaseModel):
    user_id: str


class ErrorNotice(BaseModel):
    text: str


class ValidatorReply(BaseModel):
    """Response body expected from the membership validator."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    message: str | None = None
