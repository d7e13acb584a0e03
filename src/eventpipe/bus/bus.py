"""Relay channel protocol and factory.

Creates the appropriate channel implementation based on the configured
backend. The relay only depends on :class:`IChannel`, so a durable
at-least-once transport can replace Pub/Sub without touching the event
bus or the job runner.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from eventpipe.core.enums import ChannelBackend

from .memory_channel import MemoryChannel
from .redis_channel import RedisPubSubChannel


@runtime_checkable
class ISubscription(Protocol):
    """Open subscription yielding raw relay messages."""

    def __aiter__(self) -> AsyncIterator[str]: ...

    async def close(self) -> None: ...


@runtime_checkable
class IChannel(Protocol):
    """Broadcast publish/subscribe channel."""

    name: str

    async def start(self) -> None: ...
    async def stop(self) -> None: ...

    async def publish(self, message: str) -> None: ...

    async def subscribe(self) -> ISubscription: ...


def create_channel(
    backend: ChannelBackend,
    redis_url: str = "redis://localhost:6379/0",
    channel: str = "eventpipe:events",
) -> MemoryChannel | RedisPubSubChannel:
    """Create a relay channel for the given backend.

    - MEMORY: MemoryChannel (no external deps, single process)
    - REDIS: RedisPubSubChannel (shared by every process)
    """
    if backend == ChannelBackend.MEMORY:
        return MemoryChannel(name=channel)
    return RedisPubSubChannel(redis_url=redis_url, channel=channel)
