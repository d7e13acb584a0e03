"""Process-local event bus with per-instance completion tracking.

Handlers are registered by event name and invoked synchronously, in
registration order, when an event of that name is emitted. A handler may
return an awaitable; it is scheduled on the running loop and attached to
the pending-completion record of the *emitted instance* (not of its
type), so two concurrently emitted events of the same name settle
independently.

Improvements:
- ``emit`` returns an awaitable :class:`EmitHandle`; ``once`` is kept for
  callers that only hold the event
- Optional per-handler deadline, overridable per registration
- Optional error callback for handler failures
- Per-event-name error counters
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass
from typing import Any, Union

from eventpipe.core.events import BaseEvent

logger = logging.getLogger(__name__)

Handler = Callable[[BaseEvent], Union[Awaitable[Any], Any]]
HandlerErrorCallback = Callable[[str, str, Exception], None]


@dataclass(frozen=True)
class HandlerOutcome:
    """Settled result of one handler invocation for one event instance."""

    handler: Handler
    result: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# Registration uses the bus-wide handler deadline
USE_BUS_TIMEOUT: Any = object()


@dataclass(eq=False)
class _Subscription:
    handler: Handler
    timeout: Any = USE_BUS_TIMEOUT


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or type(handler).__qualname__


class EmitHandle:
    """Completion handle for one emitted event instance.

    Awaiting the handle waits for every deferred handler completion of that
    instance and returns their outcomes. It never raises for handler
    failures; those are reported in the outcomes and already logged.
    """

    def __init__(
        self,
        event: BaseEvent,
        immediate: list[HandlerOutcome],
        pending: asyncio.Future[list[HandlerOutcome]] | None = None,
    ) -> None:
        self.event = event
        self._immediate = immediate
        self._pending = pending

    def done(self) -> bool:
        return self._pending is None or self._pending.done()

    async def wait(self) -> list[HandlerOutcome]:
        if self._pending is None:
            return list(self._immediate)
        # Shield so a cancelled waiter does not cancel sibling handlers
        deferred = await asyncio.shield(self._pending)
        return self._immediate + deferred

    def __await__(self) -> Generator[Any, None, list[HandlerOutcome]]:
        return self.wait().__await__()


class EventBus:
    """In-process event bus. Single asyncio event loop, no global state.

    Construct one per process at startup and pass it to every component
    that registers or emits.
    """

    def __init__(
        self,
        handler_timeout: float | None = None,
        on_handler_error: HandlerErrorCallback | None = None,
    ) -> None:
        # event name → ordered registrations
        self._subscriptions: dict[str, list[_Subscription]] = defaultdict(list)
        # id(event) → (event, gathered completions)
        self._pending: dict[
            int, tuple[BaseEvent, asyncio.Future[list[HandlerOutcome]]]
        ] = {}
        self._handler_timeout = handler_timeout
        self._on_handler_error = on_handler_error

        # Observability
        self._error_counts: dict[str, int] = defaultdict(int)
        self._events_emitted: int = 0

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def on(
        self,
        event: str | type[BaseEvent],
        handler: Handler,
        *,
        timeout: float | None = USE_BUS_TIMEOUT,
    ) -> Callable[[], None]:
        """Register *handler* for an event name or event class.

        The same handler may be registered more than once; every
        registration runs. ``timeout`` replaces the bus deadline for this
        registration (``None`` disables it). Returns a callable removing
        this registration.
        """
        name = event if isinstance(event, str) else event.name
        subscription = _Subscription(handler, timeout)
        self._subscriptions[name].append(subscription)

        def unsubscribe() -> None:
            try:
                self._subscriptions[name].remove(subscription)
            except ValueError:
                pass

        return unsubscribe

    def handlers(self, name: str) -> list[Handler]:
        """Return the handlers registered for *name*, in order."""
        return [s.handler for s in self._subscriptions.get(name, [])]

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def emit(self, event: BaseEvent) -> EmitHandle:
        """Start every handler registered for ``event.name``.

        Returns once all handlers have been started, without waiting for
        their deferred completions. Synchronous handler errors are logged
        and do not stop dispatch to the remaining handlers.
        """
        self._events_emitted += 1
        subscriptions = list(self._subscriptions.get(event.name, []))

        immediate: list[HandlerOutcome] = []
        deferred: list[tuple[Handler, asyncio.Future[HandlerOutcome]]] = []

        for subscription in subscriptions:
            handler = subscription.handler
            try:
                result = handler(event)
            except Exception as exc:
                self._record_failure(event, handler, exc)
                immediate.append(HandlerOutcome(handler, error=exc))
                continue

            if inspect.isawaitable(result):
                deferred.append(
                    (
                        handler,
                        asyncio.ensure_future(
                            self._settle(
                                event, handler, result, self._timeout_for(subscription)
                            )
                        ),
                    )
                )
            else:
                immediate.append(HandlerOutcome(handler, result=result))

        logger.debug(
            "Emitted %s event_id=%s handlers=%d deferred=%d",
            event.name,
            event.event_id,
            len(subscriptions),
            len(deferred),
        )
        if not deferred:
            return EmitHandle(event, immediate)

        key = id(event)
        gathered = asyncio.ensure_future(self._gather(deferred))
        self._pending[key] = (event, gathered)
        gathered.add_done_callback(lambda fut: self._release(key, fut))
        return EmitHandle(event, immediate, gathered)

    async def once(self, event: BaseEvent) -> list[HandlerOutcome]:
        """Wait for the deferred completions of an already emitted instance.

        Resolves immediately when nothing is pending for *event*: either it
        was never emitted, none of its handlers were deferred, or they have
        all settled.
        """
        entry = self._pending.get(id(event))
        if entry is None or entry[0] is not event:
            return []
        return await asyncio.shield(entry[1])

    async def flush(self) -> None:
        """Wait until no emitted instance has unsettled handlers."""
        while self._pending:
            _, gathered = next(iter(self._pending.values()))
            await asyncio.shield(gathered)
            # Done callbacks run on the next loop iteration
            await asyncio.sleep(0)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _gather(
        deferred: list[tuple[Handler, asyncio.Future[HandlerOutcome]]],
    ) -> list[HandlerOutcome]:
        results = await asyncio.gather(
            *(future for _, future in deferred), return_exceptions=True
        )
        # A cancelled handler still counts as settled
        return [
            HandlerOutcome(handler, error=result)
            if isinstance(result, BaseException)
            else result
            for (handler, _), result in zip(deferred, results)
        ]

    def _timeout_for(self, subscription: _Subscription) -> float | None:
        if subscription.timeout is USE_BUS_TIMEOUT:
            return self._handler_timeout
        return subscription.timeout

    def _release(
        self, key: int, gathered: asyncio.Future[list[HandlerOutcome]]
    ) -> None:
        entry = self._pending.get(key)
        # The same instance may have been emitted again meanwhile
        if entry is not None and entry[1] is gathered:
            del self._pending[key]

    async def _settle(
        self,
        event: BaseEvent,
        handler: Handler,
        awaitable: Awaitable[Any],
        timeout: float | None,
    ) -> HandlerOutcome:
        try:
            if timeout is not None:
                result = await asyncio.wait_for(awaitable, timeout)
            else:
                result = await awaitable
        except asyncio.TimeoutError as exc:
            logger.error(
                "Handler %s timed out after %ss on %s event_id=%s",
                _handler_name(handler),
                timeout,
                event.name,
                event.event_id,
            )
            self._record_failure(event, handler, exc, log=False)
            return HandlerOutcome(handler, error=exc)
        except Exception as exc:
            self._record_failure(event, handler, exc)
            return HandlerOutcome(handler, error=exc)
        return HandlerOutcome(handler, result=result)

    def _record_failure(
        self,
        event: BaseEvent,
        handler: Handler,
        exc: Exception,
        log: bool = True,
    ) -> None:
        self._error_counts[event.name] += 1
        if log:
            logger.error(
                "Handler %s failed on %s event_id=%s",
                _handler_name(handler),
                event.name,
                event.event_id,
                exc_info=exc,
            )

        if self._on_handler_error is not None:
            try:
                self._on_handler_error(event.name, _handler_name(handler), exc)
            except Exception:
                logger.warning("on_handler_error callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_error_counts(self) -> dict[str, int]:
        """Return per-event-name handler error counts."""
        return dict(self._error_counts)

    @property
    def pending_count(self) -> int:
        """Number of emitted instances with unsettled handlers."""
        return len(self._pending)

    @property
    def events_emitted(self) -> int:
        return self._events_emitted
