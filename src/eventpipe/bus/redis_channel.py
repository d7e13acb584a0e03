"""Redis Pub/Sub channel implementation.

Uses a single Redis Pub/Sub channel shared by every process. Pub/Sub is a
broadcast medium: every connected subscriber receives every message, there
is no acknowledgement, replay or persistence, and messages published while
no subscriber is connected are lost. Consumers must be idempotent.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

logger = logging.getLogger(__name__)


class RedisSubscription:
    """Async iterator over the data of one Pub/Sub connection.

    Reads poll with a timeout so that :meth:`close` is noticed within
    *poll_interval* seconds. A close requested during a read is completed
    by the reader; the connection is never torn down under a pending read.
    """

    def __init__(self, pubsub: PubSub, channel: str, poll_interval: float = 1.0) -> None:
        self._pubsub = pubsub
        self._channel = channel
        self._poll_interval = poll_interval
        self._closed = False
        self._reading = False
        self._released = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._messages()

    async def _messages(self) -> AsyncIterator[str]:
        try:
            while not self._closed:
                self._reading = True
                try:
                    message = await self._pubsub.get_message(
                        ignore_subscribe_messages=True,
                        timeout=self._poll_interval,
                    )
                finally:
                    self._reading = False

                if message is None or message.get("type") != "message":
                    continue
                if self._closed:
                    break
                data = message.get("data")
                if isinstance(data, bytes):
                    data = data.decode("utf-8", errors="replace")
                yield data
        finally:
            await self._release()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._reading:
            await self._release()

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        try:
            await self._pubsub.unsubscribe(self._channel)
        finally:
            await self._pubsub.aclose()


class RedisPubSubChannel:
    """Production relay channel backed by Redis Pub/Sub."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        channel: str = "eventpipe:events",
        client: aioredis.Redis | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        self._redis_url = redis_url
        self._poll_interval = poll_interval
        self.name = channel
        self._redis: aioredis.Redis | None = client
        self._owns_client = client is None
        self._subscriptions: list[RedisSubscription] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect to Redis."""
        if self._redis is None:
            self._redis = aioredis.from_url(
                self._redis_url, decode_responses=True
            )

    async def stop(self) -> None:
        """Close open subscriptions and the Redis connection."""
        for subscription in self._subscriptions:
            try:
                await subscription.close()
            except Exception:
                logger.warning("Failed to close subscription", exc_info=True)
        self._subscriptions.clear()

        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Publish / Subscribe
    # ------------------------------------------------------------------

    async def publish(self, message: str) -> None:
        """Publish *message* on the channel."""
        if self._redis is None:
            raise RuntimeError("RedisPubSubChannel not started")

        receivers = await self._redis.publish(self.name, message)
        if not receivers:
            logger.warning("No subscriber on %s, message dropped", self.name)

    async def subscribe(self) -> RedisSubscription:
        """Open a Pub/Sub connection; messages published from now on are seen."""
        if self._redis is None:
            raise RuntimeError("RedisPubSubChannel not started")

        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(self.name)
        subscription = RedisSubscription(pubsub, self.name, self._poll_interval)
        self._subscriptions.append(subscription)
        return subscription
