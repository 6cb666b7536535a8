"""Compare-and-swap write loop shared by membership and readiness operations."""

import logging
from collections.abc import Callable

from .errors import ConcurrentUpdateError, RoomNotFoundError, VersionConflictError
from .models import Room
from .store import RoomPatch, RoomStore

logger = logging.getLogger(__name__)


class DeleteRoom:
    """Plan result asking for the room to be deleted instead of patched."""


DELETE_ROOM = DeleteRoom()

RoomPlan = Callable[[Room], RoomPatch | DeleteRoom | None]


async def mutate_room(store: RoomStore, room_id: str, plan: RoomPlan) -> Room | None:
    """Read a room, let ``plan`` decide the change, and write it guarded by version.

    ``plan`` receives a fresh snapshot on every attempt and may raise a
    RoomError to reject the operation. It returns a RoomPatch to apply,
    DELETE_ROOM to delete the room, or None when nothing needs to change.

    Returns:
        The updated room, the unchanged room when the plan was a no-op,
        or None if the room was deleted.

    Raises:
        RoomNotFoundError: If the room does not exist.
        ConcurrentUpdateError: If every attempt lost a race with another writer.
    """
    for attempt in range(1, store.max_write_attempts + 1):
        room = await store.get(room_id)
        change = plan(room)

        if change is None:
            return room

        try:
            if isinstance(change, DeleteRoom):
                await store.delete(room_id, expected_version=room.version)
                return None

            change.expected_version = room.version
            return await store.update(room_id, change)
        except VersionConflictError as e:
            logger.debug(
                "Write conflict on room %s (attempt %d/%d): %s",
                room_id,
                attempt,
                store.max_write_attempts,
                e,
            )

    logger.warning(
        "Giving up on room %s after %d conflicting writes", room_id, store.max_write_attempts
    )
    raise ConcurrentUpdateError()


async def update_room(store: RoomStore, room_id: str, plan: RoomPlan) -> Room:
    """Like :func:`mutate_room` for plans that never delete the room."""
    room = await mutate_room(store, room_id, plan)
    if room is None:
        raise RoomNotFoundError(f"Room {room_id} not found")
    return room
