"""Room command handlers for WebSocket messages.

Handlers register per message type and raise ``RoomError`` for rejected
commands; ``dispatch`` turns those into ERROR replies for the requester.
"""

import logging
from collections.abc import Awaitable, Callable

from app.schemas.ws import MessageType
from app.services.room.errors import RoomError

from .base import HandlerContext, HandlerResult, error_response, room_error_response

logger = logging.getLogger(__name__)

HandlerFunc = Callable[[HandlerContext], Awaitable[HandlerResult]]

_handlers: dict[MessageType, HandlerFunc] = {}


def handler(message_type: MessageType) -> Callable[[HandlerFunc], HandlerFunc]:
    """Register the decorated coroutine as the handler for ``message_type``."""

    def register(func: HandlerFunc) -> HandlerFunc:
        if message_type in _handlers:
            raise ValueError(f"Handler for {message_type.value} already registered")
        _handlers[message_type] = func
        return func

    return register


async def dispatch(ctx: HandlerContext) -> HandlerResult:
    """Run the handler for the message type and answer the requester.

    Message types clients may not send (server-only types) get an
    UNSUPPORTED_MESSAGE error.
    """
    command = _handlers.get(ctx.message.type)
    if command is None:
        logger.debug(
            "Connection %s sent unsupported message type %s",
            ctx.connection_id,
            ctx.message.type.value,
        )
        return error_response(
            "UNSUPPORTED_MESSAGE",
            f"Message type {ctx.message.type.value} is not accepted from clients",
            ctx.request_id,
        )

    try:
        return await command(ctx)
    except RoomError as e:
        return room_error_response(ctx, e)


from . import kick, leave, ping, ready, start_game  # noqa: E402, F401

__all__ = [
    "HandlerContext",
    "HandlerResult",
    "dispatch",
    "handler",
]
