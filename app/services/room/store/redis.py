"""Upstash Redis backed room store.

Redis keys per room:
    - room:{room_id}:meta (Hash) - scalar room fields, settings JSON and version
    - room:{room_id}:players (Hash) - player_id -> player JSON
    - room:{room_id}:order (List) - player ids in join order
    - room_code:{code} (String) - room_id holding the code
    - rooms:index (Sorted set) - room ids scored by creation time (ms)

Create, read, update and delete each run as one Lua script, so a room is never
observed half-written and player add/remove/replace happen atomically on the
server, guarded by the document version.

Writes made by this process reach its subscribers straight away. Writes made by
other processes sharing the database are picked up by a per-subscription poll
of the ``version`` field in the meta hash; a missing meta hash means the room
was deleted.
"""

import asyncio
import json
import logging
from typing import Any

from upstash_redis.asyncio import Redis

from ..errors import GameCodeConflictError, RoomNotFoundError, VersionConflictError
from ..feed import RoomSubscription
from ..models import Player, Room, RoomSettings, RoomStatus
from .base import DEFAULT_WRITE_ATTEMPTS, RoomPatch, RoomStore

logger = logging.getLogger(__name__)

ROOM_KEY_PREFIX = "room:"
ROOM_CODE_KEY_PREFIX = "room_code:"
ROOM_INDEX_KEY = "rooms:index"

DEFAULT_POLL_INTERVAL = 0.5  # seconds

_READ_ROOM_LUA = """
local function read_room(meta_key, players_key, order_key)
  local meta = redis.call('HGETALL', meta_key)
  if #meta == 0 then
    return nil
  end
  local order = redis.call('LRANGE', order_key, 0, -1)
  local players = {}
  if #order > 0 then
    players = redis.call('HMGET', players_key, unpack(order))
  end
  return {meta, players}
end
"""

# KEYS: meta, players, order
_GET_SCRIPT = (
    _READ_ROOM_LUA
    + """
return read_room(KEYS[1], KEYS[2], KEYS[3])
"""
)

# KEYS: code, meta, players, order, index
# ARGV: room_id, created_ms, n_meta, (field, value)*, n_players, (player_id, json)*
_CREATE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
  return 0
end
redis.call('SET', KEYS[1], ARGV[1])
local i = 3
local n = tonumber(ARGV[i])
i = i + 1
for _ = 1, n do
  redis.call('HSET', KEYS[2], ARGV[i], ARGV[i + 1])
  i = i + 2
end
n = tonumber(ARGV[i])
i = i + 1
for _ = 1, n do
  redis.call('HSET', KEYS[3], ARGV[i], ARGV[i + 1])
  redis.call('RPUSH', KEYS[4], ARGV[i])
  i = i + 2
end
redis.call('ZADD', KEYS[5], ARGV[2], ARGV[1])
return 1
"""

# KEYS: meta, players, order
# ARGV: expected_version ('' = unguarded),
#       n_set, (field, value)*, n_remove, (player_id)*,
#       n_replace, (player_id, json)*, n_add, (player_id, json)*
# Returns {-1} if missing, {-2, version} on conflict, {1, version, room} on success.
_UPDATE_SCRIPT = (
    _READ_ROOM_LUA
    + """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return {-1}
end
local version = tonumber(redis.call('HGET', KEYS[1], 'version'))
if ARGV[1] ~= '' and tonumber(ARGV[1]) ~= version then
  return {-2, version}
end
local i = 2
local n = tonumber(ARGV[i])
i = i + 1
for _ = 1, n do
  redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
  i = i + 2
end
n = tonumber(ARGV[i])
i = i + 1
for _ = 1, n do
  if redis.call('HDEL', KEYS[2], ARGV[i]) == 1 then
    redis.call('LREM', KEYS[3], 0, ARGV[i])
  end
  i = i + 1
end
n = tonumber(ARGV[i])
i = i + 1
for _ = 1, n do
  if redis.call('HEXISTS', KEYS[2], ARGV[i]) == 1 then
    redis.call('HSET', KEYS[2], ARGV[i], ARGV[i + 1])
  end
  i = i + 2
end
n = tonumber(ARGV[i])
i = i + 1
for _ = 1, n do
  if redis.call('HSETNX', KEYS[2], ARGV[i], ARGV[i + 1]) == 1 then
    redis.call('RPUSH', KEYS[3], ARGV[i])
  end
  i = i + 2
end
version = version + 1
redis.call('HSET', KEYS[1], 'version', tostring(version))
return {1, version, read_room(KEYS[1], KEYS[2], KEYS[3])}
"""
)

# KEYS: meta, players, order, index
# ARGV: room_id, expected_version ('' = unguarded), code key prefix
# Returns {0} if missing, {-2, version} on conflict, {1, version} when deleted.
_DELETE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  redis.call('ZREM', KEYS[4], ARGV[1])
  return {0}
end
local version = tonumber(redis.call('HGET', KEYS[1], 'version'))
if ARGV[2] ~= '' and tonumber(ARGV[2]) ~= version then
  return {-2, version}
end
local code = redis.call('HGET', KEYS[1], 'game_code')
if code then
  local code_key = ARGV[3] .. code
  if redis.call('GET', code_key) == ARGV[1] then
    redis.call('DEL', code_key)
  end
end
redis.call('DEL', KEYS[1], KEYS[2], KEYS[3])
redis.call('ZREM', KEYS[4], ARGV[1])
return {1, version}
"""

# KEYS: index
# ARGV: room key prefix
# Returns open room ids newest first; prunes index entries whose room is gone.
_LIST_OPEN_SCRIPT = """
local ids = redis.call('ZREVRANGE', KEYS[1], 0, -1)
local open = {}
for _, room_id in ipairs(ids) do
  local status = redis.call('HGET', ARGV[1] .. room_id .. ':meta', 'status')
  if not status then
    redis.call('ZREM', KEYS[1], room_id)
  elseif status == 'waiting' or status == 'ready' then
    table.insert(open, room_id)
  end
end
return open
"""


def room_meta_key(room_id: str) -> str:
    return f"{ROOM_KEY_PREFIX}{room_id}:meta"


def room_players_key(room_id: str) -> str:
    return f"{ROOM_KEY_PREFIX}{room_id}:players"


def room_order_key(room_id: str) -> str:
    return f"{ROOM_KEY_PREFIX}{room_id}:order"


def room_code_key(code: str) -> str:
    return f"{ROOM_CODE_KEY_PREFIX}{code}"


def encode_meta(room: Room) -> dict[str, str]:
    """Flatten a room's scalar fields into hash values."""
    return {
        "id": room.id,
        "name": room.name,
        "host_id": room.host_id,
        "max_players": str(room.max_players),
        "min_players": str(room.min_players),
        "status": room.status.value,
        "created_at": room.created_at.isoformat(),
        "game_code": room.game_code,
        "settings": json.dumps(room.settings.to_document()),
        "version": str(room.version),
    }


def encode_player(player: Player) -> str:
    return json.dumps(player.to_document(), separators=(",", ":"))


def encode_patch_args(patch: RoomPatch) -> list[str]:
    """Encode a patch as the flat ARGV list the update script expects."""
    args: list[str] = ["" if patch.expected_version is None else str(patch.expected_version)]

    args.append(str(len(patch.set_fields)))
    for field_name, value in patch.set_fields.items():
        args.extend([field_name, value.value if isinstance(value, RoomStatus) else str(value)])

    args.append(str(len(patch.remove_player_ids)))
    args.extend(patch.remove_player_ids)

    args.append(str(len(patch.replace_players)))
    for player in patch.replace_players:
        args.extend([player.id, encode_player(player)])

    args.append(str(len(patch.add_players)))
    for player in patch.add_players:
        args.extend([player.id, encode_player(player)])

    return args


def decode_room(raw: list[Any] | None) -> Room | None:
    """Build a Room from the ``{meta, players}`` pair returned by the read snippet."""
    if not raw:
        return None
    meta_flat, players_raw = raw[0], raw[1] or []
    meta = {str(meta_flat[i]): meta_flat[i + 1] for i in range(0, len(meta_flat), 2)}

    players = []
    for player_json in players_raw:
        # HMGET yields nil for an order entry whose record is missing
        if not player_json:
            continue
        players.append(Player.from_document(json.loads(player_json)))

    settings_raw = meta.get("settings")
    settings = json.loads(settings_raw) if settings_raw else {}

    return Room.from_document(
        {
            "id": meta["id"],
            "name": meta["name"],
            "host_id": meta["host_id"],
            "game_code": meta["game_code"],
            "created_at": meta["created_at"],
            "players": [p.to_document() for p in players],
            "max_players": meta.get("max_players", 10),
            "min_players": meta.get("min_players", 5),
            "status": meta.get("status", RoomStatus.WAITING.value),
            "settings": RoomSettings.from_document(settings).to_document(),
            "version": meta.get("version", 0),
        }
    )


class RedisRoomStore(RoomStore):
    """Room store backed by Upstash Redis.

    Args:
        redis_client: Async Upstash client.
        max_write_attempts: Bound for compare-and-swap retries by callers.
        poll_interval: Seconds between version checks of a subscribed room.
    """

    def __init__(
        self,
        redis_client: Redis,
        max_write_attempts: int = DEFAULT_WRITE_ATTEMPTS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        super().__init__(max_write_attempts)
        self._redis = redis_client
        self._poll_interval = poll_interval
        self._pollers: set[asyncio.Task] = set()

    async def subscribe(self, room_id: str) -> RoomSubscription:
        """Open a change stream that also follows writes from other processes."""
        subscription = self.feed.open(room_id)
        room = await self._read(room_id)
        subscription.push(room)
        if room is not None:
            task = asyncio.create_task(self._poll(subscription))
            self._pollers.add(task)
            task.add_done_callback(self._pollers.discard)
        return subscription

    async def _poll(self, subscription: RoomSubscription) -> None:
        room_id = subscription.room_id
        meta_key = room_meta_key(room_id)
        while True:
            await asyncio.sleep(self._poll_interval)
            if not subscription.active or subscription.terminated:
                return
            try:
                stored = await self._redis.hget(meta_key, "version")
                if stored is not None and int(stored) <= subscription.last_version:
                    continue
                room = None if stored is None else await self._read(room_id)
            except Exception as e:
                logger.warning("Polling room %s failed: %s", room_id, e)
                continue
            if room is None:
                logger.debug("Room %s gone, ending its stream", room_id)
                subscription.push(None)
                return
            subscription.push(room)

    async def close(self) -> None:
        pollers = list(self._pollers)
        for task in pollers:
            task.cancel()
        await asyncio.gather(*pollers, return_exceptions=True)
        await super().close()

    async def create(self, room: Room) -> str:
        room.version = 0
        meta = encode_meta(room)
        args: list[str] = [room.id, str(int(room.created_at.timestamp() * 1000))]
        args.append(str(len(meta)))
        for field_name, value in meta.items():
            args.extend([field_name, value])
        args.append(str(len(room.players)))
        for player in room.players:
            args.extend([player.id, encode_player(player)])

        created = await self._redis.eval(
            _CREATE_SCRIPT,
            keys=[
                room_code_key(room.game_code),
                room_meta_key(room.id),
                room_players_key(room.id),
                room_order_key(room.id),
                ROOM_INDEX_KEY,
            ],
            args=args,
        )
        if not int(created):
            raise GameCodeConflictError(f"Game code {room.game_code} already in use")

        logger.debug("Stored room %s with code %s in Redis", room.id, room.game_code)
        self.feed.publish(room.id, room)
        return room.id

    async def _read(self, room_id: str) -> Room | None:
        raw = await self._redis.eval(
            _GET_SCRIPT,
            keys=[room_meta_key(room_id), room_players_key(room_id), room_order_key(room_id)],
            args=[],
        )
        return decode_room(raw)

    async def get(self, room_id: str) -> Room:
        room = await self._read(room_id)
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        return room

    async def find_by_code(self, code: str) -> Room:
        room_id = await self._redis.get(room_code_key(code))
        if not room_id:
            raise RoomNotFoundError(f"No room with code {code}")
        return await self.get(str(room_id))

    async def list_open(self) -> list[Room]:
        room_ids = await self._redis.eval(
            _LIST_OPEN_SCRIPT,
            keys=[ROOM_INDEX_KEY],
            args=[ROOM_KEY_PREFIX],
        )
        rooms = []
        for room_id in room_ids or []:
            room = await self._read(str(room_id))
            # Skip rooms deleted or started between the index scan and the read
            if room is not None and room.is_open:
                rooms.append(room)
        return rooms

    async def update(self, room_id: str, patch: RoomPatch) -> Room:
        result = await self._redis.eval(
            _UPDATE_SCRIPT,
            keys=[room_meta_key(room_id), room_players_key(room_id), room_order_key(room_id)],
            args=encode_patch_args(patch),
        )
        outcome = int(result[0])
        if outcome == -1:
            raise RoomNotFoundError(f"Room {room_id} not found")
        if outcome == -2:
            raise VersionConflictError(patch.expected_version or 0, int(result[1]))

        room = decode_room(result[2])
        if room is None:
            raise RoomNotFoundError(f"Room {room_id} not found")
        self.feed.publish(room_id, room)
        return room

    async def delete(self, room_id: str, expected_version: int | None = None) -> None:
        result = await self._redis.eval(
            _DELETE_SCRIPT,
            keys=[
                room_meta_key(room_id),
                room_players_key(room_id),
                room_order_key(room_id),
                ROOM_INDEX_KEY,
            ],
            args=[
                room_id,
                "" if expected_version is None else str(expected_version),
                ROOM_CODE_KEY_PREFIX,
            ],
        )
        outcome = int(result[0])
        if outcome == -2:
            raise VersionConflictError(expected_version or 0, int(result[1]))
        if outcome == 1:
            logger.debug("Deleted room %s from Redis", room_id)
            self.feed.publish(room_id, None)
