"""Room membership: create, join, leave, kick and delete.

All functions take the store explicitly and hold no state of their own.
Writes go through :func:`mutate_room`, so concurrent changes to the same room
are serialized by the store's version check rather than by local locks.
"""

import logging
import uuid
from collections.abc import Callable
from typing import Any

from .codes import generate_game_code
from .errors import (
    AlreadyStartedError,
    CodeExhaustedError,
    ForbiddenError,
    GameCodeConflictError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTargetError,
    PlayerNotFoundError,
    RoomFullError,
    RoomNotFoundError,
)
from .models import (
    DEFAULT_MAX_PLAYERS,
    DEFAULT_MIN_PLAYERS,
    Player,
    PlayerProfile,
    Room,
    RoomSettings,
    RoomStatus,
    utc_now,
)
from .store import RoomPatch, RoomStore
from .writes import DELETE_ROOM, DeleteRoom, mutate_room, update_room

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5


def _require_name(value: str, field_name: str) -> str:
    name = (value or "").strip()
    if not name:
        raise InvalidArgumentError(f"{field_name} must not be empty")
    return name


async def create_room(
    store: RoomStore,
    creator: PlayerProfile,
    player_name: str,
    room_name: str,
    settings: dict[str, Any] | None = None,
    *,
    generate_code: Callable[[], str] = generate_game_code,
    max_attempts: int = MAX_CODE_ATTEMPTS,
) -> str:
    """Create a room with the creator as its only player and host.

    Args:
        store: Room store to write to.
        creator: Identity of the creating user.
        player_name: The creator's in-game name.
        room_name: Display name of the room.
        settings: Optional overrides merged over the default settings.
        generate_code: Game code factory, called again on every collision.
        max_attempts: Number of codes to try before giving up.

    Returns:
        The new room's id.

    Raises:
        InvalidArgumentError: If a name is empty after trimming.
        CodeExhaustedError: If every generated code collided.
    """
    player_name = _require_name(player_name, "player_name")
    room_name = _require_name(room_name, "room_name")
    room_settings = RoomSettings().merged(settings)

    for attempt in range(1, max_attempts + 1):
        now = utc_now()
        room = Room(
            id=str(uuid.uuid4()),
            name=room_name,
            host_id=creator.id,
            game_code=generate_code(),
            created_at=now,
            players=[Player.from_profile(creator, player_name, joined_at=now, is_host=True)],
            max_players=DEFAULT_MAX_PLAYERS,
            min_players=DEFAULT_MIN_PLAYERS,
            status=RoomStatus.WAITING,
            settings=room_settings,
        )
        try:
            room_id = await store.create(room)
        except GameCodeConflictError:
            logger.warning(
                "Game code %s collided (attempt %d/%d)", room.game_code, attempt, max_attempts
            )
            continue

        logger.info(
            "Room created: room_id=%s, code=%s, host=%s", room_id, room.game_code, creator.id
        )
        return room_id

    raise CodeExhaustedError(f"No unique game code after {max_attempts} attempts")


async def join_room(
    store: RoomStore,
    room_id: str,
    profile: PlayerProfile,
    player_name: str,
) -> Room:
    """Add a player to a room, or refresh their record if already present.

    A rejoin updates name and provider fields in place and keeps readiness,
    host flag and join time; it succeeds whatever the capacity or status.

    Raises:
        RoomNotFoundError: If the room does not exist.
        RoomFullError: If a new player would exceed ``max_players``.
        AlreadyStartedError: If a new player joins after the match began.
    """
    player_name = _require_name(player_name, "player_name")
    rejoined = False

    def plan(room: Room) -> RoomPatch:
        nonlocal rejoined
        existing = room.get_player(profile.id)
        if existing is not None:
            rejoined = True
            return RoomPatch(replace_players=[existing.refreshed(profile, player_name)])

        rejoined = False
        if room.is_full:
            raise RoomFullError()
        if not room.is_open:
            raise AlreadyStartedError()
        return RoomPatch(add_players=[Player.from_profile(profile, player_name, utc_now())])

    room = await update_room(store, room_id, plan)

    if rejoined:
        logger.info("User %s rejoined room %s", profile.id, room_id)
    else:
        logger.info(
            "User %s joined room %s (%d/%d players)",
            profile.id,
            room_id,
            len(room.players),
            room.max_players,
        )
    return room


async def leave_room(store: RoomStore, room_id: str, player_id: str) -> None:
    """Remove a player from a room. Leaving twice, or a missing room, is a no-op.

    A departing host hands the role to the earliest-joined remaining player in
    the same write; a host leaving alone deletes the room.
    """

    successor_id: str | None = None
    was_member = False

    def plan(room: Room) -> RoomPatch | DeleteRoom | None:
        nonlocal successor_id, was_member
        successor_id = None
        leaving = room.get_player(player_id)
        was_member = leaving is not None
        if leaving is None:
            return None

        remaining = [p for p in room.players if p.id != player_id]
        if not remaining:
            return DELETE_ROOM

        if not leaving.is_host:
            return RoomPatch(remove_player_ids=[player_id])

        # players are stored in join order
        successor = remaining[0]
        successor.is_host = True
        successor_id = successor.id
        return RoomPatch(
            set_fields={"host_id": successor.id},
            remove_player_ids=[player_id],
            replace_players=[successor],
        )

    try:
        room = await mutate_room(store, room_id, plan)
    except RoomNotFoundError:
        logger.debug("Leave ignored, room %s does not exist", room_id)
        return

    if not was_member:
        logger.debug("Leave ignored, %s is not in room %s", player_id, room_id)
    elif room is None:
        logger.info("Room %s deleted after its last player %s left", room_id, player_id)
    elif successor_id is not None:
        logger.info(
            "Host %s left room %s, host transferred to %s", player_id, room_id, successor_id
        )
    else:
        logger.info("User %s left room %s", player_id, room_id)


async def kick_player(
    store: RoomStore,
    room_id: str,
    requester_id: str,
    target_id: str,
) -> Room:
    """Remove another player from the room. Host only.

    Raises:
        RoomNotFoundError: If the room does not exist.
        ForbiddenError: If the requester is not the host.
        InvalidTargetError: If the host targets themselves.
        PlayerNotFoundError: If the target is not in the room.
        InvalidStateError: If the match has already begun.
    """

    def plan(room: Room) -> RoomPatch:
        if requester_id != room.host_id:
            raise ForbiddenError("Only the host can kick players")
        if requester_id == target_id:
            raise InvalidTargetError()
        if not room.has_player(target_id):
            raise PlayerNotFoundError(f"Player {target_id} is not in this room")
        if not room.is_open:
            raise InvalidStateError("Players cannot be kicked once the game has started")
        return RoomPatch(remove_player_ids=[target_id])

    room = await update_room(store, room_id, plan)
    logger.info("Host %s kicked %s from room %s", requester_id, target_id, room_id)
    return room


async def delete_room(store: RoomStore, room_id: str, requester_id: str) -> None:
    """Delete a room before its match starts. Host only.

    Raises:
        RoomNotFoundError: If the room does not exist.
        ForbiddenError: If the requester is not the host.
        InvalidStateError: If the status is past waiting/ready.
    """

    def plan(room: Room) -> DeleteRoom:
        if requester_id != room.host_id:
            raise ForbiddenError("Only the host can delete the room")
        if not room.is_open:
            raise InvalidStateError("Cannot delete a room whose game has started")
        return DELETE_ROOM

    await mutate_room(store, room_id, plan)
    logger.info("Room %s deleted by host %s", room_id, requester_id)
