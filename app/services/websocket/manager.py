import asyncio
import contextlib
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from fastapi import WebSocket

from app.config import Settings, get_settings
from app.dependencies.store import get_room_store
from app.schemas.room import RoomSnapshot
from app.schemas.ws import (
    ConnectedPayload,
    MessageType,
    RoomClosedPayload,
    WSCloseCode,
    WSServerMessage,
)
from app.services.room.feed import RoomSubscription
from app.services.room.models import Room
from app.services.room.store import RoomStore

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """An accepted socket of one authenticated user."""

    connection_id: str
    websocket: WebSocket
    user_id: str
    room_id: str | None = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_seen: float = field(default_factory=time.monotonic)


@dataclass
class RoomWatch:
    """Store subscription of one room and the local connections it feeds."""

    room_id: str
    subscription: RoomSubscription
    connection_ids: set[str] = field(default_factory=set)


class ConnectionManager:
    """Tracks this server's sockets and pushes room snapshots to them.

    A room gets one watch while at least one local connection is attached to
    it. The watch's task forwards each snapshot from ``store.subscribe`` as
    ROOM_UPDATED. Deletion of the room sends ROOM_CLOSED ``deleted`` to every
    attached connection; a user missing from a snapshot gets ROOM_CLOSED
    ``removed``. Either way the socket is then closed normally.
    """

    def __init__(
        self,
        store: RoomStore | None = None,
        server_id: str | None = None,
        settings: Settings | None = None,
    ):
        self._store = store
        self.server_id = server_id or os.getenv("HOSTNAME", uuid.uuid4().hex[:8])
        self._settings = settings or get_settings()

        self._connections: dict[str, Connection] = {}
        self._watches: dict[str, RoomWatch] = {}
        self._watch_tasks: set[asyncio.Task] = set()
        self._cleanup_task: asyncio.Task | None = None

    @property
    def store(self) -> RoomStore:
        if self._store is None:
            self._store = get_room_store()
        return self._store

    async def connect(
        self, websocket: WebSocket, user_id: str, room_id: str, room: RoomSnapshot
    ) -> Connection:
        """Register an accepted socket, greet it and attach it to ``room_id``.

        The CONNECTED message carries ``room`` so a reconnecting client can
        resync before the first ROOM_UPDATED arrives.
        """
        connection = Connection(
            connection_id=str(uuid.uuid4()),
            websocket=websocket,
            user_id=user_id,
        )
        self._connections[connection.connection_id] = connection
        logger.info(
            "Connection %s opened for user %s on %s",
            connection.connection_id,
            user_id,
            self.server_id,
        )

        greeting = ConnectedPayload(
            connection_id=connection.connection_id,
            user_id=user_id,
            server_id=self.server_id,
            room=room,
        )
        await self.send_to_connection(
            connection.connection_id,
            WSServerMessage(
                type=MessageType.CONNECTED,
                payload=greeting.model_dump(mode="json", by_alias=True),
            ),
        )
        await self.subscribe_to_room(connection.connection_id, room_id)
        return connection

    async def disconnect(self, connection_id: str) -> None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return
        if connection.room_id is not None:
            self._detach(connection_id, connection.room_id)
        logger.info("Connection %s closed for user %s", connection_id, connection.user_id)

    async def heartbeat(self, connection_id: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.last_seen = time.monotonic()

    async def cleanup_stale_connections(self) -> None:
        """Close sockets silent for longer than WS_CONNECTION_TIMEOUT."""
        deadline = time.monotonic() - self._settings.WS_CONNECTION_TIMEOUT
        stale = [c for c in self._connections.values() if c.last_seen < deadline]
        for connection in stale:
            logger.warning(
                "Connection %s for user %s timed out", connection.connection_id, connection.user_id
            )
            await self._close_websocket(connection.connection_id, WSCloseCode.GOING_AWAY)
            await self.disconnect(connection.connection_id)

    async def _cleanup_loop(self) -> None:
        interval = self._settings.WS_HEARTBEAT_INTERVAL
        while True:
            await asyncio.sleep(interval)
            try:
                await self.cleanup_stale_connections()
            except Exception:
                logger.exception("Stale connection cleanup failed")

    async def start_cleanup_task(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info(
                "Stale connection cleanup every %ds", self._settings.WS_HEARTBEAT_INTERVAL
            )

    async def stop_cleanup_task(self) -> None:
        if self._cleanup_task is None:
            return
        task, self._cleanup_task = self._cleanup_task, None
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def close_all_connections(self) -> None:
        """Close every socket with GOING_AWAY and wait for room watches to end."""
        logger.info("Closing %d connections", len(self._connections))
        for connection_id in list(self._connections):
            await self._close_websocket(connection_id, WSCloseCode.GOING_AWAY)
            await self.disconnect(connection_id)
        if self._watch_tasks:
            await asyncio.gather(*self._watch_tasks, return_exceptions=True)

    async def send_to_connection(self, connection_id: str, message: WSServerMessage) -> bool:
        """Send one message; a failed send drops the connection.

        Returns:
            True if the message was handed to the socket.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        try:
            await connection.websocket.send_json(message.model_dump(mode="json", exclude_none=True))
        except Exception as e:
            logger.warning("Send to connection %s failed: %s", connection_id, e)
            await self.disconnect(connection_id)
            return False
        return True

    async def subscribe_to_room(self, connection_id: str, room_id: str) -> None:
        """Attach a connection to a room, opening the room's watch if needed."""
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.warning("Cannot attach unknown connection %s to room %s", connection_id, room_id)
            return
        if connection.room_id is not None and connection.room_id != room_id:
            self._detach(connection_id, connection.room_id)
        connection.room_id = room_id

        watch = self._watches.get(room_id)
        if watch is None:
            subscription = await self.store.subscribe(room_id)
            # The await may interleave with another attach to this room, or
            # with this connection leaving it.
            if self._connections.get(connection_id) is not connection or (
                connection.room_id != room_id
            ):
                subscription.cancel()
                return
            watch = self._watches.get(room_id)
            if watch is None:
                watch = self._open_watch(room_id, subscription)
            else:
                subscription.cancel()
        watch.connection_ids.add(connection_id)

    def _open_watch(self, room_id: str, subscription: RoomSubscription) -> RoomWatch:
        watch = RoomWatch(room_id, subscription)
        self._watches[room_id] = watch
        task = asyncio.create_task(self._forward(watch))
        self._watch_tasks.add(task)
        task.add_done_callback(self._watch_tasks.discard)
        logger.debug("Watching room %s", room_id)
        return watch

    async def unsubscribe_from_room(self, connection_id: str) -> None:
        """Detach a connection from its room without closing the socket."""
        connection = self._connections.get(connection_id)
        if connection is None or connection.room_id is None:
            return
        self._detach(connection_id, connection.room_id)
        connection.room_id = None

    def _detach(self, connection_id: str, room_id: str) -> None:
        watch = self._watches.get(room_id)
        if watch is None:
            return
        watch.connection_ids.discard(connection_id)
        if not watch.connection_ids:
            del self._watches[room_id]
            watch.subscription.cancel()
            logger.debug("Stopped watching room %s", room_id)

    async def _forward(self, watch: RoomWatch) -> None:
        try:
            async for room in watch.subscription:
                if room is None:
                    logger.info("Room %s deleted", watch.room_id)
                    await self._release_all(watch, "deleted")
                    break
                await self._deliver(watch, room)
        except Exception:
            logger.exception("Watch of room %s failed", watch.room_id)
        finally:
            # A newer watch may already own this room id.
            if self._watches.get(watch.room_id) is watch:
                del self._watches[watch.room_id]

    async def _deliver(self, watch: RoomWatch, room: Room) -> None:
        message = WSServerMessage(
            type=MessageType.ROOM_UPDATED,
            payload=RoomSnapshot.from_room(room).to_payload(),
        )
        for connection_id in list(watch.connection_ids):
            connection = self._connections.get(connection_id)
            if connection is None:
                continue
            if room.has_player(connection.user_id):
                await self.send_to_connection(connection_id, message)
            else:
                logger.info("User %s no longer in room %s", connection.user_id, room.id)
                await self._release(connection_id, room.id, "removed")
        logger.debug(
            "Room %s v%d sent to %d connections", room.id, room.version, len(watch.connection_ids)
        )

    async def _release_all(self, watch: RoomWatch, reason: Literal["deleted", "removed"]) -> None:
        for connection_id in list(watch.connection_ids):
            await self._release(connection_id, watch.room_id, reason)

    async def _release(
        self, connection_id: str, room_id: str, reason: Literal["deleted", "removed"]
    ) -> None:
        """Send ROOM_CLOSED, detach and close the socket normally."""
        closed = RoomClosedPayload(reason=reason, room_id=room_id)
        await self.send_to_connection(
            connection_id,
            WSServerMessage(type=MessageType.ROOM_CLOSED, payload=closed.model_dump()),
        )
        await self.unsubscribe_from_room(connection_id)
        await self._close_websocket(connection_id, WSCloseCode.NORMAL)

    async def _close_websocket(self, connection_id: str, code: int) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        try:
            await connection.websocket.close(code=code)
        except Exception as e:
            logger.debug("Closing socket %s failed: %s", connection_id, e)

    def get_connection(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def get_room_connection_count(self, room_id: str) -> int:
        watch = self._watches.get(room_id)
        return len(watch.connection_ids) if watch else 0

    def get_total_connection_count(self) -> int:
        return len(self._connections)


_connection_manager: ConnectionManager | None = None


def get_connection_manager() -> ConnectionManager:
    """Process-wide manager used by the WebSocket route and the app lifespan."""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager
