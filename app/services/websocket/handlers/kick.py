"""Handler for KICK_PLAYER messages."""

import logging

from app.schemas.ws import KickPlayerPayload, MessageType
from app.services.room import kick_player

from . import handler
from .base import HandlerContext, HandlerResult, ack_response, require_room, validate_payload

logger = logging.getLogger(__name__)


@handler(MessageType.KICK_PLAYER)
async def handle_kick_player(ctx: HandlerContext) -> HandlerResult:
    """Host-only removal of another player.

    The kicked player's connections are notified by the room watcher once the
    snapshot without them is delivered.
    """
    room_id, error = require_room(ctx)
    if error:
        return error

    payload, error = validate_payload(ctx.message.payload, KickPlayerPayload, ctx.request_id)
    if error:
        return error

    room = await kick_player(ctx.manager.store, room_id, ctx.user_id, payload.target_id)
    logger.debug("Host %s kicked %s from room %s", ctx.user_id, payload.target_id, room_id)
    return ack_response(ctx.request_id, room)
