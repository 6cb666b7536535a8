import logging

from upstash_redis.asyncio import Redis

from app.config import Settings, get_settings
from app.services.room.store import InMemoryRoomStore, RedisRoomStore, RoomStore

logger = logging.getLogger(__name__)

_room_store: RoomStore | None = None
_redis_client: Redis | None = None

def _open_redis(settings: Settings) -> Redis:
    """Upstash REST client; credentials are checked by Settings for the redis backend."""
    global _redis_client
    logger.info("Connecting room store to Upstash Redis at %s", settings.UPSTASH_REDIS_REST_URL)
    _redis_client = Redis(
        url=settings.UPSTASH_REDIS_REST_URL,
        token=settings.UPSTASH_REDIS_REST_TOKEN,
    )
    return _redis_client

def get_room_store() -> RoomStore:
    """Get the process-wide room store for the configured backend."""
    global _room_store
    if _room_store is None:
        settings = get_settings()
        attempts = settings.ROOM_WRITE_MAX_ATTEMPTS
        if settings.ROOM_STORE_BACKEND == "redis":
            _room_store = RedisRoomStore(
                _open_redis(settings),
                max_write_attempts=attempts,
                poll_interval=settings.ROOM_POLL_INTERVAL,
            )
        else:
            _room_store = InMemoryRoomStore(max_write_attempts=attempts)
        logger.info("Room store initialized: %s", type(_room_store).__name__)
    return _room_store


async def close_room_store() -> None:
    """End all open subscriptions, then release the Redis client if one was opened."""
    global _room_store, _redis_client
    if _room_store is not None:
        await _room_store.close()
        _room_store = None
        logger.info("Room store closed")
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None
        logger.debug("Upstash Redis client closed")
