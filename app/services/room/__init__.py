"""Room lifecycle service module.

Provides:
- Domain models and status machine (models.py)
- Game code generation (codes.py)
- Store adapters and change stream (store/, feed.py)
- Membership operations (membership.py)
- Readiness and status transitions (readiness.py)
- Lookups (queries.py)
"""

from .codes import generate_game_code, normalize_game_code
from .errors import RoomError
from .feed import RoomChangeFeed, RoomSubscription
from .membership import create_room, delete_room, join_room, kick_player, leave_room
from .models import Player, PlayerProfile, Room, RoomSettings, RoomStatus
from .queries import find_room_by_code, get_room, list_open_rooms
from .readiness import set_player_ready, start_game, update_room_status
from .store import InMemoryRoomStore, RedisRoomStore, RoomPatch, RoomStore

__all__ = [
    # Models
    "Player",
    "PlayerProfile",
    "Room",
    "RoomSettings",
    "RoomStatus",
    "RoomError",
    # Codes
    "generate_game_code",
    "normalize_game_code",
    # Store
    "InMemoryRoomStore",
    "RedisRoomStore",
    "RoomChangeFeed",
    "RoomPatch",
    "RoomStore",
    "RoomSubscription",
    # Membership
    "create_room",
    "join_room",
    "leave_room",
    "kick_player",
    "delete_room",
    # Readiness
    "set_player_ready",
    "update_room_status",
    "start_game",
    # Queries
    "list_open_rooms",
    "find_room_by_code",
    "get_room",
]
