"""Cross-process event relay over a broadcast channel.

Two cooperating roles share nothing but the channel:

* :class:`RelayPublisher` runs in the emitting process. It is registered
  as an ordinary event bus handler on a local event, derives the matching
  relay event (same attributes, distinct name) and publishes it.
* :class:`RelaySubscriber` runs in worker processes. It reads the channel
  one message at a time, reconstructs the relay event from the allow-list
  and emits it on the worker's bus, waiting for that instance's handlers
  to settle before reading the next message.

Delivery is best-effort fan-out: every live worker receives every message
and nothing is replayed for a worker that was down. Handlers reached
through the relay must be idempotent.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from eventpipe.core.errors import ConfigError, RelayError
from eventpipe.core.events import BaseEvent
from eventpipe.observability.logger import new_trace_id

from .bus import IChannel, ISubscription
from .event_bus import EventBus
from .schemas import RELAY_EVENT_TYPES, decode_event, encode_event

logger = logging.getLogger(__name__)


class RelayPublisher:
    """Publishes relay events on the shared channel."""

    def __init__(self, channel: IChannel) -> None:
        self._channel = channel
        self._published: int = 0
        self._failures: int = 0

    async def publish(self, event: BaseEvent) -> None:
        """Publish *event*; failures are logged, never raised."""
        try:
            await self._channel.publish(encode_event(event))
        except Exception:
            self._failures += 1
            logger.exception(
                "Relay publish failed for %s event_id=%s",
                event.name,
                event.event_id,
            )
            return
        self._published += 1
        logger.debug("Relayed %s event_id=%s", event.name, event.event_id)

    def relay(
        self, target: type[BaseEvent]
    ) -> Callable[[BaseEvent], Awaitable[None]]:
        """Build a handler relaying a local event as *target*.

        Raises:
            ConfigError: *target* is not in the relay allow-list.
        """
        if RELAY_EVENT_TYPES.get(target.name) is not target:
            raise ConfigError(
                f"{target.__name__} is not a registered relay event"
            )

        async def relay_handler(event: BaseEvent) -> None:
            await self.publish(target(attributes=event.attributes))

        relay_handler.__qualname__ = f"relay[{target.name}]"
        return relay_handler

    @property
    def published(self) -> int:
        return self._published

    @property
    def failures(self) -> int:
        return self._failures


class RelaySubscriber:
    """Long-lived loop feeding relayed events into a local bus.

    Messages are processed strictly one at a time, to completion, which is
    the only backpressure: throughput scales by running more workers.
    """

    def __init__(
        self,
        channel: IChannel,
        bus: EventBus,
        registry: dict[str, type[BaseEvent]] | None = None,
    ) -> None:
        self._channel = channel
        self._bus = bus
        self._registry = registry
        self._subscription: ISubscription | None = None
        self._running = False
        self.ready = asyncio.Event()

        # Observability
        self._messages_processed: int = 0
        self._messages_rejected: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Subscribe and handle messages until :meth:`stop` is called."""
        self._subscription = await self._channel.subscribe()
        self._running = True
        self.ready.set()
        logger.info("Relay subscriber listening on %s", self._channel.name)

        try:
            async for raw in self._subscription:
                await self.handle_message(raw)
                if not self._running:
                    break
        except Exception:
            if self._running:
                raise
            # Connection torn down by stop()
        finally:
            self._running = False
            await self._close_subscription()
            logger.info(
                "Relay subscriber stopped (processed=%d rejected=%d)",
                self._messages_processed,
                self._messages_rejected,
            )

    async def stop(self) -> None:
        """Stop after the message in flight, if any."""
        self._running = False
        await self._close_subscription()

    async def _close_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def handle_message(self, raw: str | bytes) -> bool:
        """Decode, emit and wait for one relayed message.

        Returns ``True`` when the message was dispatched. Never raises for
        bad input or handler failures.
        """
        new_trace_id()

        try:
            event = decode_event(raw, self._registry)
        except RelayError as exc:
            self._messages_rejected += 1
            logger.error("Rejected relay message: %s", exc)
            return False
        except Exception:
            self._messages_rejected += 1
            logger.exception("Unexpected error decoding relay message")
            return False

        try:
            await self._bus.emit(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            self._messages_rejected += 1
            logger.exception(
                "Unexpected error dispatching %s event_id=%s",
                event.name,
                event.event_id,
            )
            return False

        self._messages_processed += 1
        return True

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def messages_processed(self) -> int:
        return self._messages_processed

    @property
    def messages_rejected(self) -> int:
        return self._messages_rejected
