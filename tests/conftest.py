"""Shared fixtures for room lobby tests."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.config import Settings
from app.services.room import create_room, join_room, set_player_ready
from app.services.room.models import PlayerProfile, Room
from app.services.room.store import InMemoryRoomStore, RoomStore

# Fixed user ids for deterministic testing
HOST_ID = "00000000-0000-0000-0000-000000000001"
PLAYER_2_ID = "00000000-0000-0000-0000-000000000002"
PLAYER_3_ID = "00000000-0000-0000-0000-000000000003"

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_profile(index: int, **overrides) -> PlayerProfile:
    """Profile for user number ``index`` (1-based)."""
    fields = {
        "id": f"00000000-0000-0000-0000-{index:012d}",
        "display_name": f"User {index}",
        "email": f"user{index}@example.com",
        "photo_url": None,
        "is_anonymous": False,
    }
    fields.update(overrides)
    return PlayerProfile(**fields)


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


async def setup_room(
    store: RoomStore,
    n_players: int = 1,
    *,
    ready: bool = False,
    code: str = "ABC123",
) -> Room:
    """Create a room hosted by user 1 and join users 2..n_players."""
    room_id = await create_room(
        store, make_profile(1), "Host", "Test Room", generate_code=lambda: code
    )
    for index in range(2, n_players + 1):
        await join_room(store, room_id, make_profile(index), f"Player {index}")
    if ready:
        for index in range(1, n_players + 1):
            await set_player_ready(store, room_id, make_profile(index).id, True)
    return await store.get(room_id)


def later(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


@pytest.fixture
def store() -> InMemoryRoomStore:
    """Empty in-memory room store."""
    return InMemoryRoomStore()


@pytest.fixture
def settings() -> Settings:
    """Settings that need no environment."""
    return Settings(
        SUPABASE_URL="https://example.supabase.co",
        SUPABASE_API_KEY="test-key",
        WS_HEARTBEAT_INTERVAL=30,
        WS_CONNECTION_TIMEOUT=120,
    )
