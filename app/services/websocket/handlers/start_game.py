"""Handler for START_GAME messages."""

import logging

from app.schemas.ws import MessageType
from app.services.room import start_game

from . import handler
from .base import HandlerContext, HandlerResult, ack_response, require_room

logger = logging.getLogger(__name__)


@handler(MessageType.START_GAME)
async def handle_start_game(ctx: HandlerContext) -> HandlerResult:
    """Move the room to ``starting`` on the host's request.

    Requires the requester to be host, the room to be open, quorum and every
    player ready.
    """
    room_id, error = require_room(ctx)
    if error:
        return error

    room = await start_game(ctx.manager.store, room_id, ctx.user_id)
    logger.debug("Host %s started room %s", ctx.user_id, room_id)
    return ack_response(ctx.request_id, room)
