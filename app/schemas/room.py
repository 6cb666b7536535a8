"""Pydantic schemas for room operations.

JSON field names are camelCase (``hostId``, ``gameCode``...); Python
attributes stay snake_case.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.services.room.models import Player, Room, RoomSettings


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RoomSettingsSchema(CamelModel):
    """Game settings of a room."""

    allow_spectators: bool
    chat_enabled: bool
    time_limit: int = Field(..., description="Seconds per turn")
    difficulty_level: Literal["easy", "normal", "hard"]

    @classmethod
    def from_settings(cls, settings: RoomSettings) -> "RoomSettingsSchema":
        return cls(**settings.to_document())


class RoomSettingsUpdate(CamelModel):
    """Settings overrides supplied at room creation."""

    allow_spectators: bool | None = None
    chat_enabled: bool | None = None
    time_limit: int | None = Field(None, ge=10, le=600, description="Seconds per turn")
    difficulty_level: Literal["easy", "normal", "hard"] | None = None


class PlayerSnapshot(CamelModel):
    """A player as seen by room members."""

    id: str
    name: str
    display_name: str | None = None
    email: str | None = None
    photo_url: str | None = Field(None, alias="photoURL")
    is_host: bool
    is_ready: bool
    joined_at: datetime
    is_anonymous: bool = False

    @classmethod
    def from_player(cls, player: Player) -> "PlayerSnapshot":
        return cls(
            id=player.id,
            name=player.name,
            display_name=player.display_name,
            email=player.email,
            photo_url=player.photo_url,
            is_host=player.is_host,
            is_ready=player.is_ready,
            joined_at=player.joined_at,
            is_anonymous=player.is_anonymous,
        )


class RoomSnapshot(CamelModel):
    """Authoritative room snapshot.

    Returned by the REST endpoints and used as payload for ROOM_UPDATED messages.
    """

    id: str
    name: str
    host_id: str
    players: list[PlayerSnapshot]
    max_players: int
    min_players: int
    status: str
    created_at: datetime
    game_code: str
    settings: RoomSettingsSchema
    can_start: bool
    version: int = 0

    @classmethod
    def from_room(cls, room: Room) -> "RoomSnapshot":
        return cls(
            id=room.id,
            name=room.name,
            host_id=room.host_id,
            players=[PlayerSnapshot.from_player(p) for p in room.players],
            max_players=room.max_players,
            min_players=room.min_players,
            status=room.status.value,
            created_at=room.created_at,
            game_code=room.game_code,
            settings=RoomSettingsSchema.from_settings(room.settings),
            can_start=room.can_start,
            version=room.version,
        )

    def to_payload(self) -> dict:
        """JSON-ready dict with camelCase keys, for WebSocket payloads."""
        return self.model_dump(mode="json", by_alias=True)


class RoomListResponse(BaseModel):
    """Open rooms, newest first."""

    rooms: list[RoomSnapshot]


class CreateRoomRequest(CamelModel):
    """Request body for creating a room."""

    room_name: str = Field(..., min_length=1, max_length=50)
    player_name: str = Field(..., min_length=1, max_length=50)
    settings: RoomSettingsUpdate | None = None


class CreateRoomResponse(BaseModel):
    """Response from room creation."""

    room_id: str = Field(..., description="UUID of the room")
    code: str = Field(
        ...,
        min_length=6,
        max_length=6,
        description="6-character room code",
    )


class JoinRoomRequest(CamelModel):
    """Request body for joining a room by id."""

    player_name: str = Field(..., min_length=1, max_length=50)


class JoinByCodeRequest(CamelModel):
    """Request body for joining a room by its code (case-insensitive)."""

    code: str = Field(
        ...,
        min_length=6,
        max_length=6,
        pattern=r"^[A-Za-z0-9]{6}$",
        description="6-character room code",
    )
    player_name: str = Field(..., min_length=1, max_length=50)


class SetReadyRequest(CamelModel):
    ready: bool


class KickPlayerRequest(CamelModel):
    target_id: str = Field(..., min_length=1)


class ErrorDetail(BaseModel):
    """Error body carried in HTTPException.detail."""

    error_code: str
    message: str
