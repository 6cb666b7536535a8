import json
import logging
import time
from collections import defaultdict, deque

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from app.schemas.room import RoomSnapshot
from app.schemas.ws import (
    ErrorPayload,
    MessageType,
    WSClientMessage,
    WSCloseCode,
    WSServerMessage,
)
from app.services.identity import get_token_verifier
from app.services.room import find_room_by_code
from app.services.websocket import HandlerContext, dispatch, get_connection_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

MAX_MESSAGE_SIZE = 64 * 1024  # bytes
MAX_MESSAGES_PER_SECOND = 10


class RateLimiter:
    """Sliding one-second window of accepted message times per connection."""

    def __init__(self, limit: int = MAX_MESSAGES_PER_SECOND, window: float = 1.0):
        self.limit = limit
        self.window = window
        self._seen: dict[str, deque[float]] = defaultdict(deque)

    def is_allowed(self, connection_id: str) -> bool:
        now = time.monotonic()
        seen = self._seen[connection_id]
        while seen and seen[0] <= now - self.window:
            seen.popleft()
        if len(seen) >= self.limit:
            return False
        seen.append(now)
        return True

    def remove(self, connection_id: str) -> None:
        self._seen.pop(connection_id, None)


_rate_limiter = RateLimiter()


class FrameRejected(Exception):
    """An inbound frame that is answered with an ERROR and otherwise ignored."""

    def __init__(self, error_code: str, message: str):
        super().__init__(message)
        self.error_code = error_code
        self.message = message

    def to_message(self) -> WSServerMessage:
        return WSServerMessage(
            type=MessageType.ERROR,
            payload=ErrorPayload(error_code=self.error_code, message=self.message).model_dump(),
        )


def parse_frame(frame: dict, connection_id: str) -> WSClientMessage | None:
    """Turn a received ASGI frame into a client message.

    Returns None for empty frames and for binary frames within limits.
    Raises FrameRejected for oversized, rate-limited or malformed frames.
    """
    text = frame.get("text")
    data = text.encode("utf-8") if text else frame.get("bytes")
    if not data:
        return None

    if len(data) > MAX_MESSAGE_SIZE:
        raise FrameRejected(
            "MESSAGE_TOO_LARGE", f"Message exceeds maximum size of {MAX_MESSAGE_SIZE} bytes"
        )
    if not _rate_limiter.is_allowed(connection_id):
        raise FrameRejected("RATE_LIMITED", "Too many messages, please slow down")
    if not text:
        return None

    try:
        return WSClientMessage.model_validate(json.loads(text))
    except json.JSONDecodeError:
        raise FrameRejected("INVALID_JSON", "Invalid JSON format") from None
    except ValidationError:
        raise FrameRejected("INVALID_MESSAGE", "Invalid message format") from None


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(..., description="JWT authentication token"),
    room_code: str = Query(..., min_length=6, max_length=6, description="Room code to connect to"),
):
    """Live updates for one room.

    Clients connect with: ws://host/api/v1/ws?token=<jwt>&room_code=ABC123

    Token and membership are checked before the socket is accepted. The
    server then sends CONNECTED with the room snapshot, followed by
    ROOM_UPDATED for every committed change and ROOM_CLOSED when the room
    is deleted or the user is removed from it.
    """
    check = await get_token_verifier().verify(token)
    if not check.success or check.user_id is None:
        logger.warning("WS connection rejected: %s", check.error)
        await websocket.close(
            code=WSCloseCode.AUTH_EXPIRED if check.expired else WSCloseCode.AUTH_FAILED
        )
        return
    user_id = check.user_id

    manager = get_connection_manager()
    room = await find_room_by_code(manager.store, room_code)
    if room is None or not room.has_player(user_id):
        close_code = WSCloseCode.ROOM_NOT_FOUND if room is None else WSCloseCode.ROOM_ACCESS_DENIED
        logger.warning(
            "WS connection for user %s to room %s refused (close code %d)",
            user_id,
            room_code,
            close_code,
        )
        await websocket.close(code=close_code)
        return

    await websocket.accept()
    connection = await manager.connect(websocket, user_id, room.id, RoomSnapshot.from_room(room))
    connection_id = connection.connection_id
    logger.info(
        "WS connection %s opened for user %s in room %s", connection_id, user_id, room.game_code
    )

    try:
        while websocket.client_state == WebSocketState.CONNECTED:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break

            try:
                message = parse_frame(frame, connection_id)
            except FrameRejected as rejected:
                logger.warning(
                    "Frame from connection %s rejected: %s", connection_id, rejected.error_code
                )
                await manager.send_to_connection(connection_id, rejected.to_message())
                continue
            if message is None:
                continue

            result = await dispatch(
                HandlerContext(
                    connection_id=connection_id,
                    user_id=user_id,
                    message=message,
                    manager=manager,
                )
            )
            if result.response:
                await manager.send_to_connection(connection_id, result.response)
            if result.close_code is not None:
                await websocket.close(code=result.close_code)
                break

    except WebSocketDisconnect as e:
        logger.info("WS disconnected: connection %s, code %s", connection_id, e.code)
    except Exception:
        logger.exception("WS error for connection %s", connection_id)
    finally:
        _rate_limiter.remove(connection_id)
        await manager.disconnect(connection_id)
