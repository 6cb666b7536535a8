from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.schemas.room import RoomSnapshot


class MessageType(str, Enum):
    """WebSocket message types."""

    # Core
    PING = "ping"
    PONG = "pong"
    CONNECTED = "connected"
    ACK = "ack"
    ERROR = "error"

    # Room fan-out
    ROOM_UPDATED = "room_updated"
    ROOM_CLOSED = "room_closed"

    # Lobby actions
    SET_READY = "set_ready"
    TOGGLE_READY = "toggle_ready"
    LEAVE_ROOM = "leave_room"
    KICK_PLAYER = "kick_player"
    START_GAME = "start_game"


class WSCloseCode(IntEnum):
    """WebSocket close codes (RFC 6455 + custom)."""

    # Standard RFC 6455 codes
    NORMAL = 1000
    GOING_AWAY = 1001

    # Custom application codes (4000-4999)
    AUTH_FAILED = 4001
    AUTH_EXPIRED = 4002
    ROOM_NOT_FOUND = 4003
    ROOM_ACCESS_DENIED = 4004


class WSClientMessage(BaseModel):
    """Message sent from client to server."""

    type: MessageType
    request_id: str | None = None
    payload: dict[str, Any] | None = None


class WSServerMessage(BaseModel):
    """Message sent from server to client."""

    type: MessageType
    request_id: str | None = None
    payload: dict[str, Any] | None = None


# --- Payload schemas ---


class ConnectedPayload(BaseModel):
    """Payload for the 'connected' message.

    Carries a fresh room snapshot so a reconnecting client can resync.
    """

    connection_id: str
    user_id: str
    server_id: str
    room: RoomSnapshot


class PongPayload(BaseModel):
    """Payload for the 'pong' message."""

    server_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ErrorPayload(BaseModel):
    """Payload for ERROR messages."""

    error_code: str
    message: str


class RoomClosedPayload(BaseModel):
    """Payload sent when the room is gone for this connection.

    ``deleted``: the room no longer exists. ``removed``: the user was kicked.
    """

    reason: Literal["deleted", "removed"] = "deleted"
    room_id: str


class SetReadyPayload(BaseModel):
    """Payload for the 'set_ready' message from client."""

    ready: bool


class KickPlayerPayload(BaseModel):
    """Payload for the 'kick_player' message from client."""

    target_id: str = Field(..., min_length=1)
