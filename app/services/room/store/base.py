"""Room store contract."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ..errors import RoomNotFoundError
from ..feed import RoomChangeFeed, RoomSubscription
from ..models import Player, Room

logger = logging.getLogger(__name__)

DEFAULT_WRITE_ATTEMPTS = 5

# Top-level room fields a patch may overwrite.
PATCHABLE_FIELDS = frozenset({"host_id", "status"})


@dataclass
class RoomPatch:
    """Atomic set of changes to one room document.

    Player operations are keyed by player id:
        - add_players: appended in order, skipped if the id is already present
        - replace_players: overwrite the stored record, skipped if absent
        - remove_player_ids: removed, no-op if absent

    When ``expected_version`` is set the store rejects the whole patch with
    ``VersionConflictError`` unless the stored revision matches.
    """

    set_fields: dict[str, str] = field(default_factory=dict)
    add_players: list[Player] = field(default_factory=list)
    replace_players: list[Player] = field(default_factory=list)
    remove_player_ids: list[str] = field(default_factory=list)
    expected_version: int | None = None

    def __post_init__(self) -> None:
        unknown = set(self.set_fields) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not patchable: {sorted(unknown)}")

    @property
    def is_empty(self) -> bool:
        return not (
            self.set_fields or self.add_players or self.replace_players or self.remove_player_ids
        )


class RoomStore(ABC):
    """Persistence for room documents with a per-room change stream.

    Every committed create/update/delete is published to ``self.feed``.
    ``max_write_attempts`` bounds the compare-and-swap loop of callers that
    write through this store.
    """

    def __init__(self, max_write_attempts: int = DEFAULT_WRITE_ATTEMPTS) -> None:
        self.feed = RoomChangeFeed()
        self.max_write_attempts = max_write_attempts

    @abstractmethod
    async def create(self, room: Room) -> str:
        """Persist a new room and return its id.

        Raises:
            GameCodeConflictError: If another room holds ``room.game_code``.
        """

    @abstractmethod
    async def get(self, room_id: str) -> Room:
        """Raises RoomNotFoundError if the room does not exist."""

    @abstractmethod
    async def find_by_code(self, code: str) -> Room:
        """Exact match on an already-normalized game code.

        Raises RoomNotFoundError if no room holds the code.
        """

    @abstractmethod
    async def list_open(self) -> list[Room]:
        """Rooms in waiting/ready status, newest first."""

    @abstractmethod
    async def update(self, room_id: str, patch: RoomPatch) -> Room:
        """Apply a patch atomically and return the updated room.

        Raises:
            RoomNotFoundError: If the room does not exist.
            VersionConflictError: If ``patch.expected_version`` does not match.
        """

    @abstractmethod
    async def delete(self, room_id: str, expected_version: int | None = None) -> None:
        """Delete a room and release its code. Absent rooms are ignored.

        Raises VersionConflictError if ``expected_version`` does not match.
        """

    async def subscribe(self, room_id: str) -> RoomSubscription:
        """Open a change stream primed with the current snapshot.

        If the room does not exist the stream yields ``None`` and ends.
        """
        subscription = self.feed.open(room_id)
        try:
            room: Room | None = await self.get(room_id)
        except RoomNotFoundError:
            room = None
        subscription.push(room)
        return subscription

    async def close(self) -> None:
        self.feed.close()
        logger.debug("%s closed", type(self).__name__)
