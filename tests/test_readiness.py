"""Tests for ready flags, waiting/ready recompute and status transitions."""

import pytest

from app.services.room import set_player_ready, start_game, update_room_status
from app.services.room.errors import (
    ForbiddenError,
    InvalidStateError,
    PlayerNotFoundError,
    RoomNotFoundError,
)
from app.services.room.models import RoomStatus, is_valid_transition
from app.services.room.readiness import next_lobby_status
from app.services.room.store import InMemoryRoomStore

from .conftest import HOST_ID, PLAYER_2_ID, make_profile, run, setup_room


class TestSetPlayerReady:
    def test_sets_flag(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=2)
            return await set_player_ready(store, room.id, PLAYER_2_ID, True)

        room = run(scenario())

        assert room.get_player(PLAYER_2_ID).is_ready is True
        assert room.get_player(HOST_ID).is_ready is False
        assert room.status == RoomStatus.WAITING

    def test_room_becomes_ready_with_quorum_all_ready(self, store: InMemoryRoomStore) -> None:
        """The last ready flag at quorum moves the room to ready in the same write."""

        async def scenario():
            room = await setup_room(store, n_players=5)
            for index in range(1, 5):
                await set_player_ready(store, room.id, make_profile(index).id, True)
            before = await store.get(room.id)
            after = await set_player_ready(store, room.id, make_profile(5).id, True)
            return before, after

        before, after = run(scenario())

        assert before.status == RoomStatus.WAITING
        assert after.status == RoomStatus.READY
        assert after.can_start is True
        assert after.version == before.version + 1

    def test_all_ready_below_quorum_stays_waiting(self, store: InMemoryRoomStore) -> None:
        room = run(setup_room(store, n_players=4, ready=True))

        assert room.all_ready is True
        assert room.status == RoomStatus.WAITING

    def test_unready_moves_back_to_waiting(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=5, ready=True)
            return await set_player_ready(store, room.id, PLAYER_2_ID, False)

        room = run(scenario())

        assert room.status == RoomStatus.WAITING
        assert room.can_start is False

    def test_status_beyond_lobby_untouched(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=5, ready=True)
            await update_room_status(store, room.id, RoomStatus.STARTING)
            return await set_player_ready(store, room.id, PLAYER_2_ID, False)

        room = run(scenario())

        assert room.status == RoomStatus.STARTING
        assert room.get_player(PLAYER_2_ID).is_ready is False

    def test_non_member(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store)
            await set_player_ready(store, room.id, PLAYER_2_ID, True)

        with pytest.raises(PlayerNotFoundError):
            run(scenario())

    def test_missing_room(self, store: InMemoryRoomStore) -> None:
        with pytest.raises(RoomNotFoundError):
            run(set_player_ready(store, "missing", HOST_ID, True))


class TestUpdateRoomStatus:
    def test_valid_transition(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store)
            return await update_room_status(store, room.id, RoomStatus.CANCELLED)

        assert run(scenario()).status == RoomStatus.CANCELLED

    def test_same_status_is_noop(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store)
            updated = await update_room_status(store, room.id, RoomStatus.WAITING)
            return room.version, updated.version

        before, after = run(scenario())

        assert before == after

    def test_invalid_transition(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store)
            await update_room_status(store, room.id, RoomStatus.FINISHED)

        with pytest.raises(InvalidStateError):
            run(scenario())

    def test_terminal_statuses(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store)
            await update_room_status(store, room.id, RoomStatus.CANCELLED)
            await update_room_status(store, room.id, RoomStatus.WAITING)

        with pytest.raises(InvalidStateError):
            run(scenario())

    def test_accepts_plain_string(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store)
            return await update_room_status(store, room.id, "starting")

        assert run(scenario()).status == RoomStatus.STARTING


class TestStatusMachine:
    @pytest.mark.parametrize(
        "current, target",
        [
            (RoomStatus.WAITING, RoomStatus.READY),
            (RoomStatus.READY, RoomStatus.WAITING),
            (RoomStatus.READY, RoomStatus.STARTING),
            (RoomStatus.STARTING, RoomStatus.IN_PROGRESS),
            (RoomStatus.IN_PROGRESS, RoomStatus.PAUSED),
            (RoomStatus.PAUSED, RoomStatus.IN_PROGRESS),
            (RoomStatus.PAUSED, RoomStatus.FINISHED),
            (RoomStatus.STARTING, RoomStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current: RoomStatus, target: RoomStatus) -> None:
        assert is_valid_transition(current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (RoomStatus.WAITING, RoomStatus.IN_PROGRESS),
            (RoomStatus.IN_PROGRESS, RoomStatus.WAITING),
            (RoomStatus.IN_PROGRESS, RoomStatus.CANCELLED),
            (RoomStatus.FINISHED, RoomStatus.WAITING),
            (RoomStatus.CANCELLED, RoomStatus.READY),
        ],
    )
    def test_rejected(self, current: RoomStatus, target: RoomStatus) -> None:
        assert not is_valid_transition(current, target)

    def test_next_lobby_status_ignores_started_rooms(self, store: InMemoryRoomStore) -> None:
        room = run(setup_room(store, n_players=5, ready=True))
        room.status = RoomStatus.PAUSED
        assert next_lobby_status(room) == RoomStatus.PAUSED


class TestStartGame:
    def test_host_starts_ready_room(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=5, ready=True)
            return await start_game(store, room.id, HOST_ID)

        assert run(scenario()).status == RoomStatus.STARTING

    def test_non_host_forbidden(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=5, ready=True)
            await start_game(store, room.id, PLAYER_2_ID)

        with pytest.raises(ForbiddenError):
            run(scenario())

    def test_requires_quorum(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=4, ready=True)
            await start_game(store, room.id, HOST_ID)

        with pytest.raises(InvalidStateError, match="at least 5"):
            run(scenario())

    def test_requires_everyone_ready(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=5, ready=True)
            await set_player_ready(store, room.id, PLAYER_2_ID, False)
            await start_game(store, room.id, HOST_ID)

        with pytest.raises(InvalidStateError, match="ready"):
            run(scenario())

    def test_cannot_start_twice(self, store: InMemoryRoomStore) -> None:
        async def scenario():
            room = await setup_room(store, n_players=5, ready=True)
            await start_game(store, room.id, HOST_ID)
            await start_game(store, room.id, HOST_ID)

        with pytest.raises(InvalidStateError):
            run(scenario())
