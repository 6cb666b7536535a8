"""Tests for the /api/v1/ws endpoint and its inbound frame checks."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.config import Settings
from app.routers import ws
from app.routers.ws import MAX_MESSAGE_SIZE, FrameRejected, RateLimiter, parse_frame
from app.schemas.ws import MessageType, WSCloseCode
from app.services.identity import TokenCheck
from app.services.room.store import InMemoryRoomStore
from app.services.websocket.manager import ConnectionManager

from .conftest import HOST_ID, PLAYER_2_ID, make_profile, run, setup_room


class FakeVerifier:
    """Tokens are ``user-<n>``; ``expired`` simulates an expired JWT."""

    async def verify(self, token: str) -> TokenCheck:
        if token == "expired":
            return TokenCheck(success=False, error="Token has expired", expired=True)
        if not token.startswith("user-"):
            return TokenCheck(success=False, error="Invalid token")
        return TokenCheck(success=True, claims={"sub": make_profile(int(token[5:])).id})


@pytest.fixture
def client(
    store: InMemoryRoomStore, settings: Settings, monkeypatch: pytest.MonkeyPatch
) -> TestClient:
    manager = ConnectionManager(store=store, settings=settings)
    monkeypatch.setattr(ws, "get_token_verifier", FakeVerifier)
    monkeypatch.setattr(ws, "get_connection_manager", lambda: manager)
    app = FastAPI()
    app.include_router(ws.router, prefix="/api/v1")
    return TestClient(app)


def close_code_for(client: TestClient, url: str) -> int:
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(url):
            pass
    return exc_info.value.code


class TestParseFrame:
    def test_valid_message(self) -> None:
        frame = {"type": "websocket.receive", "text": '{"type": "ping", "request_id": "r1"}'}
        message = parse_frame(frame, "parse-valid")
        assert message.type == MessageType.PING
        assert message.request_id == "r1"

    def test_empty_frame_ignored(self) -> None:
        assert parse_frame({"type": "websocket.receive", "text": ""}, "parse-empty") is None

    def test_binary_frame_ignored(self) -> None:
        assert parse_frame({"type": "websocket.receive", "bytes": b"\x00"}, "parse-binary") is None

    @pytest.mark.parametrize(
        "text, error_code",
        [
            ("{not json", "INVALID_JSON"),
            ('{"type": "no_such_type"}', "INVALID_MESSAGE"),
            ("x" * (MAX_MESSAGE_SIZE + 1), "MESSAGE_TOO_LARGE"),
        ],
    )
    def test_rejected_frames(self, text: str, error_code: str) -> None:
        with pytest.raises(FrameRejected) as exc_info:
            parse_frame({"type": "websocket.receive", "text": text}, f"parse-{error_code}")
        assert exc_info.value.error_code == error_code
        assert exc_info.value.to_message().payload["error_code"] == error_code


class TestRateLimiter:
    def test_limit_per_window(self) -> None:
        limiter = RateLimiter(limit=3, window=60.0)
        assert [limiter.is_allowed("c1") for _ in range(4)] == [True, True, True, False]
        assert limiter.is_allowed("c2") is True

    def test_remove_resets_connection(self) -> None:
        limiter = RateLimiter(limit=1, window=60.0)
        limiter.is_allowed("c1")
        limiter.remove("c1")
        assert limiter.is_allowed("c1") is True


class TestHandshake:
    def test_invalid_token(self, client: TestClient) -> None:
        code = close_code_for(client, "/api/v1/ws?token=bogus&room_code=ABC123")
        assert code == WSCloseCode.AUTH_FAILED

    def test_expired_token(self, client: TestClient) -> None:
        code = close_code_for(client, "/api/v1/ws?token=expired&room_code=ABC123")
        assert code == WSCloseCode.AUTH_EXPIRED

    def test_unknown_room(self, client: TestClient) -> None:
        code = close_code_for(client, "/api/v1/ws?token=user-1&room_code=ZZZZZZ")
        assert code == WSCloseCode.ROOM_NOT_FOUND

    def test_non_member(self, client: TestClient, store: InMemoryRoomStore) -> None:
        run(setup_room(store))
        code = close_code_for(client, "/api/v1/ws?token=user-2&room_code=ABC123")
        assert code == WSCloseCode.ROOM_ACCESS_DENIED


class TestSession:
    def test_connected_then_ping(self, client: TestClient, store: InMemoryRoomStore) -> None:
        run(setup_room(store))

        with client.websocket_connect("/api/v1/ws?token=user-1&room_code=abc123") as socket:
            connected = socket.receive_json()
            socket.send_json({"type": "ping", "request_id": "p1"})
            replies = [socket.receive_json(), socket.receive_json()]

        assert connected["type"] == "connected"
        assert connected["payload"]["user_id"] == HOST_ID
        assert connected["payload"]["room"]["gameCode"] == "ABC123"
        # The watcher's initial snapshot and the pong may arrive in either order
        assert {reply["type"] for reply in replies} == {"room_updated", "pong"}

    def test_malformed_frame_keeps_socket_open(
        self, client: TestClient, store: InMemoryRoomStore
    ) -> None:
        run(setup_room(store))

        with client.websocket_connect("/api/v1/ws?token=user-1&room_code=ABC123") as socket:
            socket.receive_json()
            socket.send_text("{oops")
            socket.send_json({"type": "ping", "request_id": "p2"})
            seen = [socket.receive_json() for _ in range(3)]

        errors = [m for m in seen if m["type"] == "error"]
        assert errors[0]["payload"]["error_code"] == "INVALID_JSON"
        assert any(m["type"] == "pong" for m in seen)

    def test_leave_closes_socket(self, client: TestClient, store: InMemoryRoomStore) -> None:
        room = run(setup_room(store, n_players=2))

        with client.websocket_connect("/api/v1/ws?token=user-2&room_code=ABC123") as socket:
            socket.receive_json()
            socket.send_json({"type": "leave_room", "request_id": "l1"})
            message = socket.receive_json()
            while message["type"] != "ack":
                message = socket.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                socket.receive_json()

        assert message["request_id"] == "l1"
        assert exc_info.value.code == WSCloseCode.NORMAL
        assert not run(store.get(room.id)).has_player(PLAYER_2_ID)
