"""Handlers for SET_READY and TOGGLE_READY messages."""

import logging

from app.schemas.ws import MessageType, SetReadyPayload
from app.services.room import get_room, set_player_ready
from app.services.room.errors import PlayerNotFoundError

from . import handler
from .base import HandlerContext, HandlerResult, ack_response, require_room, validate_payload

logger = logging.getLogger(__name__)


@handler(MessageType.SET_READY)
async def handle_set_ready(ctx: HandlerContext) -> HandlerResult:
    room_id, error = require_room(ctx)
    if error:
        return error

    payload, error = validate_payload(ctx.message.payload, SetReadyPayload, ctx.request_id)
    if error:
        return error

    room = await set_player_ready(ctx.manager.store, room_id, ctx.user_id, payload.ready)
    logger.debug("User %s set ready=%s in room %s", ctx.user_id, payload.ready, room_id)
    return ack_response(ctx.request_id, room)


@handler(MessageType.TOGGLE_READY)
async def handle_toggle_ready(ctx: HandlerContext) -> HandlerResult:
    """Flip the user's ready flag based on the current stored value."""
    room_id, error = require_room(ctx)
    if error:
        return error

    store = ctx.manager.store
    player = (await get_room(store, room_id)).get_player(ctx.user_id)
    if player is None:
        raise PlayerNotFoundError()

    ready = not player.is_ready
    room = await set_player_ready(store, room_id, ctx.user_id, ready)
    logger.debug("User %s toggled ready to %s in room %s", ctx.user_id, ready, room_id)
    return ack_response(ctx.request_id, room)
