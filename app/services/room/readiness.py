"""Ready-state aggregation and room status transitions."""

import logging

from .errors import ForbiddenError, InvalidStateError, PlayerNotFoundError
from .models import Room, RoomStatus, is_valid_transition
from .store import RoomPatch, RoomStore
from .writes import update_room

logger = logging.getLogger(__name__)


def next_lobby_status(room: Room) -> RoomStatus:
    """Status implied by readiness, applied only across the waiting/ready boundary."""
    if room.status == RoomStatus.WAITING and room.can_start:
        return RoomStatus.READY
    if room.status == RoomStatus.READY and not room.can_start:
        return RoomStatus.WAITING
    return room.status


async def set_player_ready(store: RoomStore, room_id: str, player_id: str, ready: bool) -> Room:
    """Set a player's ready flag and move the room between waiting and ready.

    The flag and any resulting status change are written together. Statuses
    other than waiting/ready are never touched.

    Raises:
        RoomNotFoundError: If the room does not exist.
        PlayerNotFoundError: If the player is not in the room.
    """

    previous_status: RoomStatus | None = None

    def plan(room: Room) -> RoomPatch:
        nonlocal previous_status
        previous_status = room.status
        player = room.get_player(player_id)
        if player is None:
            raise PlayerNotFoundError(f"Player {player_id} is not in this room")

        # player is the room's own record, so readiness below sees the new flag
        player.is_ready = ready
        patch = RoomPatch(replace_players=[player])
        status = next_lobby_status(room)
        if status != room.status:
            patch.set_fields["status"] = status.value
        return patch

    room = await update_room(store, room_id, plan)

    logger.info("User %s set ready=%s in room %s", player_id, ready, room_id)
    if previous_status is not None and room.status != previous_status:
        logger.info("Room %s status %s -> %s", room_id, previous_status.value, room.status.value)
    return room


async def update_room_status(store: RoomStore, room_id: str, status: RoomStatus) -> Room:
    """Write a room status.

    Authorization is the caller's job (see :func:`start_game`). Only edges of
    the status machine are accepted; writing the current status is a no-op.

    Raises:
        RoomNotFoundError: If the room does not exist.
        InvalidStateError: If the room cannot move from its status to ``status``.
    """
    status = RoomStatus(status)

    def plan(room: Room) -> RoomPatch | None:
        if room.status == status:
            return None
        if not is_valid_transition(room.status, status):
            raise InvalidStateError(
                f"Cannot move room from {room.status.value} to {status.value}"
            )
        return RoomPatch(set_fields={"status": status.value})

    room = await update_room(store, room_id, plan)
    logger.info("Room %s status set to %s", room_id, room.status.value)
    return room


async def start_game(store: RoomStore, room_id: str, requester_id: str) -> Room:
    """Move a lobby to ``starting`` on the host's request.

    Raises:
        RoomNotFoundError: If the room does not exist.
        ForbiddenError: If the requester is not the host.
        InvalidStateError: If the lobby is not open, short of quorum, or not all ready.
    """

    def plan(room: Room) -> RoomPatch:
        if requester_id != room.host_id:
            raise ForbiddenError("Only the host can start the game")
        if not room.is_open:
            raise InvalidStateError(f"Cannot start a room in status {room.status.value}")
        if not room.has_quorum:
            raise InvalidStateError(
                f"Need at least {room.min_players} players, have {len(room.players)}"
            )
        if not room.all_ready:
            raise InvalidStateError("All players must be ready")
        return RoomPatch(set_fields={"status": RoomStatus.STARTING.value})

    room = await update_room(store, room_id, plan)
    logger.info("Room %s starting, requested by host %s", room_id, requester_id)
    return room
