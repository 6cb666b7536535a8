"""Live room connections: socket registry, room watchers and command handlers."""

from app.services.websocket.handlers import HandlerContext, HandlerResult, dispatch
from app.services.websocket.manager import ConnectionManager, get_connection_manager

__all__ = [
    "ConnectionManager",
    "HandlerContext",
    "HandlerResult",
    "dispatch",
    "get_connection_manager",
]
