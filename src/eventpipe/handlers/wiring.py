"""Handler registration for the two process roles.

The emitting (API) process handles local events and relays the ones
workers care about. Worker processes only see relay events, so a local
event is never handled twice by the same process.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from eventpipe.bus.event_bus import USE_BUS_TIMEOUT, EventBus
from eventpipe.bus.relay import RelayPublisher
from eventpipe.core.events import (
    JobStartedEvent,
    JobStartedRelayEvent,
    SimulationUpsertedEvent,
    SimulationUpsertedRelayEvent,
)
from eventpipe.core.interfaces import (
    IContactSync,
    INotificationSender,
    IPollStatsRepository,
)
from eventpipe.jobs.runner import Executor, JobContext

from .jobs import RunStartedJob
from .simulations import SendSimulationUpserted, SyncSimulationContact, UpdatePollStats

logger = logging.getLogger(__name__)


def register_api_handlers(
    bus: EventBus,
    *,
    publisher: RelayPublisher,
    sender: INotificationSender,
    poll_stats: IPollStatsRepository,
) -> list[Callable[[], None]]:
    """Wire the emitting process. Returns the unsubscribe callables."""
    unsubscribes = [
        bus.on(SimulationUpsertedEvent, SendSimulationUpserted(sender)),
        bus.on(SimulationUpsertedEvent, UpdatePollStats(poll_stats)),
        bus.on(
            SimulationUpsertedEvent,
            publisher.relay(SimulationUpsertedRelayEvent),
        ),
        bus.on(JobStartedEvent, publisher.relay(JobStartedRelayEvent)),
    ]
    logger.debug("Registered %d API handlers", len(unsubscribes))
    return unsubscribes


def register_worker_handlers(
    bus: EventBus,
    *,
    executor: Executor,
    context: JobContext,
    contacts: IContactSync,
    job_timeout: float | None = USE_BUS_TIMEOUT,
) -> list[Callable[[], None]]:
    """Wire a worker process. Returns the unsubscribe callables.

    ``job_timeout`` replaces the bus handler deadline for job runs.
    """
    unsubscribes = [
        bus.on(
            JobStartedRelayEvent,
            RunStartedJob(executor, context),
            timeout=job_timeout,
        ),
        bus.on(SimulationUpsertedRelayEvent, SyncSimulationContact(contacts)),
    ]
    logger.debug("Registered %d worker handlers", len(unsubscribes))
    return unsubscribes
