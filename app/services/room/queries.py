"""Read-only room lookups."""

import logging

from .codes import normalize_game_code
from .errors import RoomNotFoundError
from .models import Room
from .store import RoomStore

logger = logging.getLogger(__name__)


async def list_open_rooms(store: RoomStore) -> list[Room]:
    """Rooms still accepting players (waiting or ready), newest first."""
    rooms = await store.list_open()
    logger.debug("Listed %d open rooms", len(rooms))
    return rooms


async def find_room_by_code(store: RoomStore, code: str) -> Room | None:
    """Case-insensitive exact match on the game code. Returns None if absent."""
    normalized = normalize_game_code(code)
    if not normalized:
        return None
    try:
        return await store.find_by_code(normalized)
    except RoomNotFoundError:
        logger.debug("No room found for code %s", normalized)
        return None


async def get_room(store: RoomStore, room_id: str) -> Room:
    """Raises RoomNotFoundError if the room does not exist."""
    return await store.get(room_id)
