"""In-memory broadcast channel for tests and single-process mode.

No external dependencies. Every live subscription receives every message
published after it was opened (fan-out). Messages published while no
subscription is open are dropped, matching the pub/sub transport.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

_CLOSED = object()


class MemorySubscription:
    """One subscriber's view of a :class:`MemoryChannel`."""

    def __init__(self, channel: MemoryChannel) -> None:
        self._channel = channel
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    def _deliver(self, message: str) -> None:
        self._queue.put_nowait(message)

    def __aiter__(self) -> AsyncIterator[str]:
        return self

    async def __anext__(self) -> str:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._channel._detach(self)
        self._queue.put_nowait(_CLOSED)


class MemoryChannel:
    """In-process broadcast channel. Single asyncio event loop."""

    def __init__(self, name: str = "eventpipe:events", record: bool = False) -> None:
        self.name = name
        self._record = record
        self._subscriptions: list[MemorySubscription] = []
        self._history: list[str] = []
        self._dropped: int = 0

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()

    async def publish(self, message: str) -> None:
        """Deliver *message* to every open subscription."""
        if self._record:
            self._history.append(message)
        if not self._subscriptions:
            self._dropped += 1
            logger.debug("No subscriber on %s, message dropped", self.name)
            return
        for subscription in self._subscriptions:
            subscription._deliver(message)

    async def subscribe(self) -> MemorySubscription:
        subscription = MemorySubscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: MemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    # ------------------------------------------------------------------
    # Testing helpers
    # ------------------------------------------------------------------

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def dropped(self) -> int:
        return self._dropped

    def get_history(self) -> list[str]:
        """Every message published so far, when recording. For testing."""
        return list(self._history)
