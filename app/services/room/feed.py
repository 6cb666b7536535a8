"""In-process change stream for room documents.

Stores publish every committed change here; subscribers receive full room
snapshots through a :class:`RoomSubscription`, an async iterator that yields
``Room`` on each change and ``None`` exactly once when the room is deleted.
"""

import asyncio
import copy
import logging

from .models import Room

logger = logging.getLogger(__name__)

_CANCELLED = object()


class RoomSubscription:
    """Cancellable stream of snapshots for one room.

    Usage:
        subscription = await store.subscribe(room_id)
        async for room in subscription:
            if room is None:
                ...  # room deleted, stream is finished
    """

    def __init__(self, room_id: str, feed: "RoomChangeFeed"):
        self.room_id = room_id
        self._feed = feed
        self._queue: asyncio.Queue[Room | None | object] = asyncio.Queue()
        self._last_version = -1
        self._terminated = False
        self._cancelled = False
        self._finished = False

    @property
    def active(self) -> bool:
        return not (self._cancelled or self._finished)

    @property
    def last_version(self) -> int:
        """Version of the newest snapshot queued, -1 before the first."""
        return self._last_version

    @property
    def terminated(self) -> bool:
        return self._terminated

    def push(self, room: Room | None) -> bool:
        """Queue a snapshot, or the terminal signal when ``room`` is None.

        Snapshots not newer than the last one queued are dropped.
        Returns True if something was queued.
        """
        if self._terminated or self._cancelled:
            return False
        if room is None:
            self._terminated = True
            self._queue.put_nowait(None)
            return True
        if room.version <= self._last_version:
            logger.debug(
                "Dropping stale snapshot v%d for room %s (last v%d)",
                room.version,
                self.room_id,
                self._last_version,
            )
            return False
        self._last_version = room.version
        self._queue.put_nowait(copy.deepcopy(room))
        return True

    def cancel(self) -> None:
        """Stop the stream without a terminal signal."""
        if self._cancelled or self._finished:
            return
        self._cancelled = True
        self._feed._discard(self)
        self._queue.put_nowait(_CANCELLED)

    def __aiter__(self) -> "RoomSubscription":
        return self

    async def __anext__(self) -> Room | None:
        if self._cancelled or self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CANCELLED or self._cancelled:
            raise StopAsyncIteration
        if item is None:
            self._finished = True
            self._feed._discard(self)
            return None
        return item  # type: ignore[return-value]


class RoomChangeFeed:
    """Per-room registry of live subscriptions."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, set[RoomSubscription]] = {}

    def open(self, room_id: str) -> RoomSubscription:
        subscription = RoomSubscription(room_id, self)
        self._subscriptions.setdefault(room_id, set()).add(subscription)
        logger.debug("Subscription opened for room %s", room_id)
        return subscription

    def publish(self, room_id: str, room: Room | None) -> int:
        """Deliver a snapshot (or the deletion signal) to every subscriber of a room.

        Returns the number of subscriptions that accepted it.
        """
        subscriptions = list(self._subscriptions.get(room_id, ()))
        delivered = sum(1 for subscription in subscriptions if subscription.push(room))
        if room is None:
            self._subscriptions.pop(room_id, None)
        logger.debug(
            "Published %s for room %s to %d subscriber(s)",
            "deletion" if room is None else f"v{room.version}",
            room_id,
            delivered,
        )
        return delivered

    def subscriber_count(self, room_id: str) -> int:
        return len(self._subscriptions.get(room_id, ()))

    def close(self) -> None:
        for subscriptions in list(self._subscriptions.values()):
            for subscription in list(subscriptions):
                subscription.cancel()
        self._subscriptions.clear()

    def _discard(self, subscription: RoomSubscription) -> None:
        subscriptions = self._subscriptions.get(subscription.room_id)
        if subscriptions is None:
            return
        subscriptions.discard(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.room_id]
