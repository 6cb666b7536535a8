"""Handler for PING messages."""

from app.schemas.ws import MessageType, PongPayload, WSServerMessage

from . import handler
from .base import HandlerContext, HandlerResult


@handler(MessageType.PING)
async def handle_ping(ctx: HandlerContext) -> HandlerResult:
    """Keepalive: refreshes the heartbeat so stale cleanup skips this socket."""
    await ctx.manager.heartbeat(ctx.connection_id)
    pong = WSServerMessage(
        type=MessageType.PONG,
        request_id=ctx.request_id,
        payload=PongPayload().model_dump(mode="json"),
    )
    return HandlerResult(success=True, response=pong)
