"""Room store adapters."""

from .base import RoomPatch, RoomStore
from .memory import InMemoryRoomStore
from .redis import RedisRoomStore

__all__ = [
    "InMemoryRoomStore",
    "RedisRoomStore",
    "RoomPatch",
    "RoomStore",
]
