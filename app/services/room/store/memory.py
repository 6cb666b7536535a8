"""Dict-backed room store.

Each operation completes without awaiting, so on a single event loop every
call is atomic with respect to other coroutines.
"""

import copy
import logging

from ..errors import GameCodeConflictError, RoomNotFoundError, VersionConflictError
from ..models import OPEN_STATUSES, Room, RoomStatus
from .base import DEFAULT_WRITE_ATTEMPTS, RoomPatch, RoomStore

logger = logging.getLogger(__name__)


class InMemoryRoomStore(RoomStore):
    """Room store held in process memory."""

    def __init__(self, max_write_attempts: int = DEFAULT_WRITE_ATTEMPTS) -> None:
        super().__init__(max_write_attempts)
        self._rooms: dict[str, Room] = {}
        self._codes: dict[str, str] = {}  # game_code -> room_id

    async def create(self, room: Room) -> str:
        if room.game_code in self._codes:
            raise GameCodeConflictError(f"Game code {room.game_code} already in use")
        if room.id in self._rooms:
            raise ValueError(f"Room {room.id} already exists")

        stored = copy.deepcopy(room)
        stored.version = 0
        self._rooms[stored.id] = stored
        self._codes[stored.game_code] = stored.id
        logger.debug("Stored room %s with code %s", stored.id, stored.game_code)
        self.feed.publish(stored.id, stored)
        return stored.id

    async def get(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        return copy.deepcopy(room)

    async def find_by_code(self, code: str) -> Room:
        room_id = self._codes.get(code)
        if room_id is None:
            raise RoomNotFoundError(f"No room with code {code}")
        return await self.get(room_id)

    async def list_open(self) -> list[Room]:
        rooms = [room for room in self._rooms.values() if room.status in OPEN_STATUSES]
        rooms.sort(key=lambda room: room.created_at, reverse=True)
        return [copy.deepcopy(room) for room in rooms]

    async def update(self, room_id: str, patch: RoomPatch) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        if patch.expected_version is not None and patch.expected_version != room.version:
            raise VersionConflictError(patch.expected_version, room.version)

        updated = copy.deepcopy(room)
        for field_name, value in patch.set_fields.items():
            if field_name == "status":
                updated.status = RoomStatus(value)
            else:
                setattr(updated, field_name, value)

        removed = set(patch.remove_player_ids)
        updated.players = [p for p in updated.players if p.id not in removed]

        replacements = {p.id: p for p in patch.replace_players}
        updated.players = [
            copy.deepcopy(replacements[p.id]) if p.id in replacements else p
            for p in updated.players
        ]

        for player in patch.add_players:
            if not updated.has_player(player.id):
                updated.players.append(copy.deepcopy(player))

        updated.version = room.version + 1
        self._rooms[room_id] = updated
        self.feed.publish(room_id, updated)
        return copy.deepcopy(updated)

    async def delete(self, room_id: str, expected_version: int | None = None) -> None:
        room = self._rooms.get(room_id)
        if room is None:
            return
        if expected_version is not None and expected_version != room.version:
            raise VersionConflictError(expected_version, room.version)

        del self._rooms[room_id]
        self._codes.pop(room.game_code, None)
        logger.debug("Deleted room %s and released code %s", room_id, room.game_code)
        self.feed.publish(room_id, None)
