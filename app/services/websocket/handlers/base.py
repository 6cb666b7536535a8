"""Base types and helpers for WebSocket message handlers."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, ValidationError

from app.schemas.room import RoomSnapshot
from app.schemas.ws import ErrorPayload, MessageType, WSClientMessage, WSServerMessage
from app.services.room.errors import RoomError
from app.services.room.models import Room

if TYPE_CHECKING:
    from app.services.websocket.manager import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass
class HandlerContext:
    """Context passed to each message handler."""

    connection_id: str
    user_id: str
    message: WSClientMessage
    manager: "ConnectionManager"

    @property
    def request_id(self) -> str | None:
        return self.message.request_id


@dataclass
class HandlerResult:
    """Result returned by message handlers.

    Room changes reach members through the store subscription, so handlers
    only answer the requester. ``close_code`` asks the endpoint to close the
    socket after sending the response.
    """

    success: bool
    response: WSServerMessage | None = None
    close_code: int | None = None


def validate_payload(
    payload: dict | None,
    schema: type[T],
    request_id: str | None,
) -> tuple[T | None, HandlerResult | None]:
    """Validate payload against a Pydantic schema.

    Returns:
        Tuple of (validated_payload, error_result). One will be None.
    """
    try:
        validated = schema.model_validate(payload or {})
        return validated, None
    except ValidationError as e:
        return None, error_response("VALIDATION_ERROR", str(e), request_id)


def error_response(error_code: str, message: str, request_id: str | None = None) -> HandlerResult:
    """Build an error HandlerResult."""
    return HandlerResult(
        success=False,
        response=WSServerMessage(
            type=MessageType.ERROR,
            request_id=request_id,
            payload=ErrorPayload(error_code=error_code, message=message).model_dump(),
        ),
    )


def room_error_response(ctx: HandlerContext, error: RoomError) -> HandlerResult:
    """Map a rejected room operation to an ERROR message for the requester."""
    logger.warning(
        "%s rejected for user %s: %s",
        ctx.message.type.value,
        ctx.user_id,
        error.error_code,
    )
    return error_response(error.error_code, error.message, ctx.request_id)


def ack_response(request_id: str | None, room: Room | None = None) -> HandlerResult:
    """Build an ACK, carrying the resulting room snapshot when there is one."""
    return HandlerResult(
        success=True,
        response=WSServerMessage(
            type=MessageType.ACK,
            request_id=request_id,
            payload=RoomSnapshot.from_room(room).to_payload() if room is not None else None,
        ),
    )


def require_room(ctx: HandlerContext) -> tuple[str | None, HandlerResult | None]:
    """Return the room id the connection is attached to, or a NOT_IN_ROOM error."""
    connection = ctx.manager.get_connection(ctx.connection_id)
    if connection is None or connection.room_id is None:
        return None, error_response("NOT_IN_ROOM", "You are not in a room", ctx.request_id)
    return connection.room_id, None
