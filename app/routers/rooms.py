"""REST endpoints for room management."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.config import Settings, get_settings
from app.dependencies.auth import CurrentProfile
from app.dependencies.store import get_room_store
from app.schemas.room import (
    CreateRoomRequest,
    CreateRoomResponse,
    ErrorDetail,
    JoinByCodeRequest,
    JoinRoomRequest,
    KickPlayerRequest,
    RoomListResponse,
    RoomSnapshot,
    SetReadyRequest,
)
from app.services import room as rooms
from app.services.room.errors import (
    CodeExhaustedError,
    ConcurrentUpdateError,
    ForbiddenError,
    GameCodeConflictError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTargetError,
    NotFoundError,
    RoomError,
    RoomFullError,
    RoomNotFoundError,
)
from app.services.room.store import RoomStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])

Store = Annotated[RoomStore, Depends(get_room_store)]
AppSettings = Annotated[Settings, Depends(get_settings)]

# Checked in order; subclasses (AlreadyStartedError) fall under their base.
_ERROR_STATUS: list[tuple[type[RoomError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidTargetError, status.HTTP_400_BAD_REQUEST),
    (InvalidArgumentError, status.HTTP_400_BAD_REQUEST),
    (RoomFullError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (GameCodeConflictError, status.HTTP_409_CONFLICT),
    (ConcurrentUpdateError, status.HTTP_409_CONFLICT),
    (CodeExhaustedError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def http_status_for(error: RoomError) -> int:
    for error_type, http_status in _ERROR_STATUS:
        if isinstance(error, error_type):
            return http_status
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _http_error(error: RoomError, action: str, user_id: str) -> HTTPException:
    http_status = http_status_for(error)
    logger.warning(
        "%s failed for user %s: %s - %s", action, user_id, error.error_code, error.message
    )
    return HTTPException(
        status_code=http_status,
        detail=ErrorDetail(error_code=error.error_code, message=error.message).model_dump(),
    )


@router.post("", response_model=CreateRoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    profile: CurrentProfile,
    request: CreateRoomRequest,
    store: Store,
    settings: AppSettings,
):
    """Create a room with the authenticated user as host and only player.

    Returns the room id and its 6-character game code.
    """
    logger.info("POST /rooms - user: %s, room_name: %s", profile.id, request.room_name)
    overrides = request.settings.model_dump(exclude_none=True) if request.settings else None
    try:
        room_id = await rooms.create_room(
            store,
            profile,
            request.player_name,
            request.room_name,
            overrides,
            max_attempts=settings.ROOM_CODE_MAX_ATTEMPTS,
        )
        room = await rooms.get_room(store, room_id)
    except RoomError as e:
        raise _http_error(e, "Create room", profile.id) from e

    return CreateRoomResponse(room_id=room.id, code=room.game_code)


@router.get("", response_model=RoomListResponse)
async def list_rooms(profile: CurrentProfile, store: Store):
    """List rooms still accepting players, newest first."""
    open_rooms = await rooms.list_open_rooms(store)
    logger.debug("GET /rooms - user: %s, %d open rooms", profile.id, len(open_rooms))
    return RoomListResponse(rooms=[RoomSnapshot.from_room(room) for room in open_rooms])


@router.get("/code/{code}", response_model=RoomSnapshot)
async def get_room_by_code(code: str, profile: CurrentProfile, store: Store):
    """Look a room up by game code (case-insensitive)."""
    room = await rooms.find_room_by_code(store, code)
    if room is None:
        raise _http_error(RoomNotFoundError(), "Find room by code", profile.id)
    return RoomSnapshot.from_room(room)


@router.post("/join", response_model=RoomSnapshot)
async def join_room_by_code(profile: CurrentProfile, request: JoinByCodeRequest, store: Store):
    """Join a room by game code. Rejoining refreshes the caller's player record."""
    logger.info("POST /rooms/join - user: %s, code: %s", profile.id, request.code)
    try:
        room = await rooms.find_room_by_code(store, request.code)
        if room is None:
            raise RoomNotFoundError()
        room = await rooms.join_room(store, room.id, profile, request.player_name)
    except RoomError as e:
        raise _http_error(e, "Join room", profile.id) from e
    return RoomSnapshot.from_room(room)


@router.get("/{room_id}", response_model=RoomSnapshot)
async def get_room(room_id: str, profile: CurrentProfile, store: Store):
    try:
        room = await rooms.get_room(store, room_id)
    except RoomError as e:
        raise _http_error(e, "Get room", profile.id) from e
    return RoomSnapshot.from_room(room)


@router.post("/{room_id}/join", response_model=RoomSnapshot)
async def join_room(room_id: str, profile: CurrentProfile, request: JoinRoomRequest, store: Store):
    """Join a room by id. Rejoining refreshes the caller's player record."""
    logger.info("POST /rooms/%s/join - user: %s", room_id, profile.id)
    try:
        room = await rooms.join_room(store, room_id, profile, request.player_name)
    except RoomError as e:
        raise _http_error(e, "Join room", profile.id) from e
    return RoomSnapshot.from_room(room)


@router.post("/{room_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_room(room_id: str, profile: CurrentProfile, store: Store):
    """Leave a room. Idempotent; the last player out deletes the room."""
    logger.info("POST /rooms/%s/leave - user: %s", room_id, profile.id)
    try:
        await rooms.leave_room(store, room_id, profile.id)
    except RoomError as e:
        raise _http_error(e, "Leave room", profile.id) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{room_id}/ready", response_model=RoomSnapshot)
async def set_ready(room_id: str, profile: CurrentProfile, request: SetReadyRequest, store: Store):
    try:
        room = await rooms.set_player_ready(store, room_id, profile.id, request.ready)
    except RoomError as e:
        raise _http_error(e, "Set ready", profile.id) from e
    return RoomSnapshot.from_room(room)


@router.post("/{room_id}/kick", response_model=RoomSnapshot)
async def kick_player(
    room_id: str, profile: CurrentProfile, request: KickPlayerRequest, store: Store
):
    """Host-only removal of another player from an open room."""
    logger.info(
        "POST /rooms/%s/kick - user: %s, target: %s", room_id, profile.id, request.target_id
    )
    try:
        room = await rooms.kick_player(store, room_id, profile.id, request.target_id)
    except RoomError as e:
        raise _http_error(e, "Kick player", profile.id) from e
    return RoomSnapshot.from_room(room)


@router.post("/{room_id}/start", response_model=RoomSnapshot)
async def start_game(room_id: str, profile: CurrentProfile, store: Store):
    """Host-only. Requires quorum and every player ready; moves the room to ``starting``."""
    logger.info("POST /rooms/%s/start - user: %s", room_id, profile.id)
    try:
        room = await rooms.start_game(store, room_id, profile.id)
    except RoomError as e:
        raise _http_error(e, "Start game", profile.id) from e
    return RoomSnapshot.from_room(room)


@router.delete("/{room_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_room(room_id: str, profile: CurrentProfile, store: Store):
    """Host-only deletion of a room that has not started."""
    logger.info("DELETE /rooms/%s - user: %s", room_id, profile.id)
    try:
        await rooms.delete_room(store, room_id, profile.id)
    except RoomError as e:
        raise _http_error(e, "Delete room", profile.id) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
