"""Handler for LEAVE_ROOM messages."""

import logging

from app.schemas.ws import MessageType, WSCloseCode
from app.services.room import leave_room
from app.services.room.errors import RoomError

from . import handler
from .base import HandlerContext, HandlerResult, ack_response, require_room

logger = logging.getLogger(__name__)


@handler(MessageType.LEAVE_ROOM)
async def handle_leave_room(ctx: HandlerContext) -> HandlerResult:
    """Leave the room, detach this connection from it and close the socket.

    Remaining members learn about the change (new host, or deletion of an
    emptied room) through the room subscription.
    """
    room_id, error = require_room(ctx)
    if error:
        return error

    # Detach first so the leaver does not receive a "removed" notice.
    await ctx.manager.unsubscribe_from_room(ctx.connection_id)
    try:
        await leave_room(ctx.manager.store, room_id, ctx.user_id)
    except RoomError:
        await ctx.manager.subscribe_to_room(ctx.connection_id, room_id)
        raise

    logger.debug("Player %s left room %s", ctx.user_id, room_id)
    result = ack_response(ctx.request_id)
    result.close_code = WSCloseCode.NORMAL
    return result
