"""Tests for room creation, joining, leaving, kicking and deletion."""

import asyncio

import pytest

from app.services.room import (
    create_room,
    delete_room,
    find_room_by_code,
    join_room,
    kick_player,
    leave_room,
    set_player_ready,
    update_room_status,
)
from app.services.room.errors import (
    AlreadyStartedError,
    CodeExhaustedError,
    ConcurrentUpdateError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTargetError,
    PlayerNotFoundError,
    RoomFullError,
    RoomNotFoundError,
    VersionConflictError,
)
from app.services.room.models import Room, RoomStatus
from app.services.room.store import InMemoryRoomStore, RoomPatch

from .conftest import HOST_ID, PLAYER_2_ID, PLAYER_3_ID, make_profile, run, setup_room


class RacingStore(InMemoryRoomStore):
    """Yields to the event loop between reading a room and returning it."""

    async def get(self, room_id: str) -> Room:
        room = await super().get(room_id)
        await asyncio.sleep(0)
        return room


class AlwaysConflictingStore(InMemoryRoomStore):
    """Every guarded write loses the race."""

    def __init__(self) -> None:
        super().__init__(max_write_attempts=3)
        self.update_calls = 0

    async def update(self, room_id: str, patch: RoomPatch) -> Room:
        if patch.expected_version is None:
            return await super().update(room_id, patch)
        self.update_calls += 1
        raise VersionConflictError(patch.expected_version, patch.expected_version + 1)


class TestCreateRoom:
    def test_creator_is_host_and_only_player(self, store: InMemoryRoomStore) -> None:
        """The new room holds exactly the creator, as host, not ready."""

        async def scenario():
            room_id = await create_room(store, make_profile(1), "  Alice ", "Friday Game")
            return await store.get(room_id)

        room = run(scenario())

        assert room.name == "Friday Game"
        assert room.host_id == HOST_ID
        assert room.status == RoomStatus.WAITING
        assert room.max_players == 10
        assert room.min_players == 5
        assert len(room.game_code) == 6
        assert len(room.players) == 1
        host = room.players[0]
        assert host.id == HOST_ID
        assert host.name == "Alice"
        assert host.is_host is True
        assert host.is_ready is False
        assert host.display_name == "User 1"
        assert host.email == "user1@example.com"
        assert host.joined_at == room.created_at

    def test_default_settings(self, store: InMemoryRoomStore) -> None:
        room = run(setup_room(store))

        assert room.settings.allow_spectators is True
        assert room.settings.chat_enabled is True
        assert room.settings.time_limit == 60
        assert room.settings.difficulty_level == "normal"

    def test_settings_overrides_are_merged(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room_id = await create_room(
                store,
                make_profile(1),
                "Host",
                "Room",
                {"time_limit": 90, "chat_enabled": False, "difficulty_level": None},
            )
            return await store.get(room_id)

        room = run(scenario())

        assert room.settings.time_limit == 90
        assert room.settings.chat_enabled is False
        assert room.settings.allow_spectators is True
        assert room.settings.difficulty_level == "normal"

    @pytest.mark.parametrize("player_name, room_name", [("", "Room"), ("Host", "   ")])
    def test_empty_names_rejected(
        self, store: InMemoryRoomStore, player_name: str, room_name: str
    ) -> None:
        with pytest.raises(InvalidArgumentError):
            run(create_room(store, make_profile(1), player_name, room_name))

    def test_code_collision_regenerates(self, store: InMemoryRoomStore) -> None:
        """A colliding code is replaced by a fresh one."""
        codes = iter(["BBBBBB", "CCCCCC"])

        async def scenario():
            await setup_room(store, code="BBBBBB")
            room_id = await create_room(
                store, make_profile(2), "Bob", "Second", generate_code=lambda: next(codes)
            )
            return await store.get(room_id)

        room = run(scenario())

        assert room.game_code == "CCCCCC"

    def test_code_exhaustion(self, store: InMemoryRoomStore) -> None:
        """Every attempt colliding ends in CodeExhaustedError."""
        calls = []

        def same_code() -> str:
            calls.append(1)
            return "AAAAAA"

        async def scenario():
            await setup_room(store, code="AAAAAA")
            await create_room(
                store, make_profile(2), "Bob", "Second", generate_code=same_code, max_attempts=5
            )

        with pytest.raises(CodeExhaustedError):
            run(scenario())
        assert len(calls) == 5


class TestJoinRoom:
    def test_new_player_is_appended(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store)
            return await join_room(store, room.id, make_profile(2), "Bob")

        room = run(scenario())

        assert [p.id for p in room.players] == [HOST_ID, PLAYER_2_ID]
        bob = room.get_player(PLAYER_2_ID)
        assert bob.name == "Bob"
        assert bob.is_host is False
        assert bob.is_ready is False

    def test_rejoin_refreshes_record(self, store: InMemoryRoomStore) -> None:
        """Rejoining updates the name and provider fields, keeps readiness and join time."""

        async def scenario():
            room = await setup_room(store, n_players=2)
            await set_player_ready(store, room.id, PLAYER_2_ID, True)
            before = (await store.get(room.id)).get_player(PLAYER_2_ID)
            profile = make_profile(2, display_name="Robert", photo_url="https://img/b.png")
            after = await join_room(store, room.id, profile, "Rob")
            return before, after

        before, room = run(scenario())

        assert len(room.players) == 2
        rob = room.get_player(PLAYER_2_ID)
        assert rob.name == "Rob"
        assert rob.display_name == "Robert"
        assert rob.photo_url == "https://img/b.png"
        assert rob.is_ready is True
        assert rob.is_host is False
        assert rob.joined_at == before.joined_at

    def test_rejoin_allowed_when_full_or_started(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=10, ready=True)
            await update_room_status(store, room.id, RoomStatus.STARTING)
            return await join_room(store, room.id, make_profile(3), "Carol again")

        room = run(scenario())

        assert len(room.players) == 10
        assert room.get_player(PLAYER_3_ID).name == "Carol again"

    def test_full_room_rejected(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=10)
            await join_room(store, room.id, make_profile(11), "Eleven")

        with pytest.raises(RoomFullError):
            run(scenario())

    def test_full_is_checked_before_started(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=10, ready=True)
            await update_room_status(store, room.id, RoomStatus.STARTING)
            await join_room(store, room.id, make_profile(11), "Eleven")

        with pytest.raises(RoomFullError):
            run(scenario())

    @pytest.mark.parametrize(
        "status",
        [RoomStatus.STARTING, RoomStatus.CANCELLED],
    )
    def test_started_room_rejected(self, store: InMemoryRoomStore, status: RoomStatus) -> None:
        async def scenario():
            room = await setup_room(store)
            await update_room_status(store, room.id, status)
            await join_room(store, room.id, make_profile(2), "Bob")

        with pytest.raises(AlreadyStartedError):
            run(scenario())

    def test_unknown_room(self, store: InMemoryRoomStore) -> None:
        with pytest.raises(RoomNotFoundError):
            run(join_room(store, "missing", make_profile(2), "Bob"))

    def test_concurrent_joins_are_not_lost(self) -> None:
        """Joins racing on the same room all land."""
        store = RacingStore()

        async def scenario():
            room = await setup_room(store)
            await asyncio.gather(
                *(join_room(store, room.id, make_profile(i), f"P{i}") for i in range(2, 6))
            )
            return await store.get(room.id)

        room = run(scenario())

        assert sorted(p.id for p in room.players) == sorted(make_profile(i).id for i in range(1, 6))

    def test_gives_up_after_repeated_conflicts(self) -> None:
        store = AlwaysConflictingStore()

        async def scenario():
            room = await setup_room(store)
            await join_room(store, room.id, make_profile(2), "Bob")

        with pytest.raises(ConcurrentUpdateError):
            run(scenario())
        assert store.update_calls == 3


class TestLeaveRoom:
    def test_player_leaves(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=3)
            await leave_room(store, room.id, PLAYER_2_ID)
            return await store.get(room.id)

        room = run(scenario())

        assert [p.id for p in room.players] == [HOST_ID, PLAYER_3_ID]
        assert room.host_id == HOST_ID

    def test_host_leaving_transfers_to_earliest_joined(self, store: InMemoryRoomStore) -> None:
        """Host role moves to the next player in join order, in the same write."""

        async def scenario():
            room = await setup_room(store, n_players=3)
            await leave_room(store, room.id, HOST_ID)
            return room.version, await store.get(room.id)

        version_before, room = run(scenario())

        assert room.host_id == PLAYER_2_ID
        assert [p.id for p in room.players] == [PLAYER_2_ID, PLAYER_3_ID]
        assert room.get_player(PLAYER_2_ID).is_host is True
        assert room.get_player(PLAYER_3_ID).is_host is False
        assert room.version == version_before + 1

    def test_last_player_leaving_deletes_room(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store)
            await leave_room(store, room.id, HOST_ID)
            return room, await find_room_by_code(store, room.game_code)

        room, found = run(scenario())

        assert found is None
        with pytest.raises(RoomNotFoundError):
            run(store.get(room.id))

    def test_leave_is_idempotent(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=2)
            await leave_room(store, room.id, PLAYER_2_ID)
            after_first = await store.get(room.id)
            await leave_room(store, room.id, PLAYER_2_ID)
            return after_first, await store.get(room.id)

        first, second = run(scenario())

        assert first.version == second.version
        assert [p.id for p in second.players] == [HOST_ID]

    def test_leave_missing_room_is_noop(self, store: InMemoryRoomStore) -> None:
        run(leave_room(store, "missing", HOST_ID))


class TestKickPlayer:
    def test_host_kicks_player(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=3)
            return await kick_player(store, room.id, HOST_ID, PLAYER_2_ID)

        room = run(scenario())

        assert [p.id for p in room.players] == [HOST_ID, PLAYER_3_ID]

    def test_non_host_forbidden(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=3)
            await kick_player(store, room.id, PLAYER_2_ID, PLAYER_3_ID)

        with pytest.raises(ForbiddenError):
            run(scenario())

    def test_host_cannot_kick_self(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=2)
            await kick_player(store, room.id, HOST_ID, HOST_ID)

        with pytest.raises(InvalidTargetError):
            run(scenario())

    def test_target_must_be_member(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=2)
            await kick_player(store, room.id, HOST_ID, PLAYER_3_ID)

        with pytest.raises(PlayerNotFoundError):
            run(scenario())

    def test_no_kicks_after_start(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=5, ready=True)
            await update_room_status(store, room.id, RoomStatus.STARTING)
            await kick_player(store, room.id, HOST_ID, PLAYER_2_ID)

        with pytest.raises(InvalidStateError):
            run(scenario())


class TestDeleteRoom:
    def test_host_deletes_and_code_is_released(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=2)
            await delete_room(store, room.id, HOST_ID)
            return await find_room_by_code(store, room.game_code)

        assert run(scenario()) is None

    def test_non_host_forbidden(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=2)
            await delete_room(store, room.id, PLAYER_2_ID)

        with pytest.raises(ForbiddenError):
            run(scenario())

    def test_started_room_cannot_be_deleted(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=5, ready=True)
            await update_room_status(store, room.id, RoomStatus.STARTING)
            await delete_room(store, room.id, HOST_ID)

        with pytest.raises(InvalidStateError):
            run(scenario())

    def test_missing_room(self, store: InMemoryRoomStore) -> None:
        with pytest.raises(RoomNotFoundError):
            run(delete_room(store, "missing", HOST_ID))
