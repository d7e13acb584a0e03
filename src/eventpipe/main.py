"""Application bootstrap.

Wires the stores, the relay channel and the event bus from settings for
the emitting process, the worker loop and one-off maintenance routines.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from .adapters.export_store import LocalExportStore
from .adapters.notifications import LoggingContactSync, LoggingNotificationSender
from .bus.bus import IChannel, create_channel
from .bus.event_bus import EventBus, HandlerOutcome
from .bus.relay import RelayPublisher, RelaySubscriber
from .core.config import Settings, load_settings
from .core.events import UserRef
from .core.interfaces import (
    IJobRepository,
    INotificationSender,
    IPollStatsRepository,
    ISimulationRepository,
)
from .core.models import Job, JobParams, PollStats, Simulation
from .handlers.wiring import register_api_handlers, register_worker_handlers
from .jobs.executors import JobExecutor
from .jobs.runner import JobContext
from .jobs.service import get_job, start_job
from .observability.logger import setup_logging
from .simulations.service import save_simulation

logger = logging.getLogger(__name__)

_SHUTDOWN_TIMEOUT = 10.0


@dataclass
class Stores:
    jobs: IJobRepository
    simulations: ISimulationRepository
    poll_stats: IPollStatsRepository
    sql: bool = False


async def open_stores(settings: Settings) -> Stores:
    """SQL repositories when a database URL is configured, else in-memory."""
    if settings.database_url:
        from .storage.postgres.connection import init_engine
        from .storage.postgres.repos import (
            SqlJobRepository,
            SqlPollStatsRepository,
            SqlSimulationRepository,
        )

        sessions = await init_engine(settings.database_url)
        return Stores(
            jobs=SqlJobRepository(sessions),
            simulations=SqlSimulationRepository(sessions),
            poll_stats=SqlPollStatsRepository(sessions),
            sql=True,
        )

    from .storage.memory import (
        InMemoryJobRepository,
        InMemoryPollStatsRepository,
        InMemorySimulationRepository,
    )

    logger.warning("No database configured, using in-memory stores")
    return Stores(
        jobs=InMemoryJobRepository(),
        simulations=InMemorySimulationRepository(),
        poll_stats=InMemoryPollStatsRepository(),
    )


async def close_stores(stores: Stores) -> None:
    if stores.sql:
        from .storage.postgres.connection import dispose

        await dispose()


def build_executor(settings: Settings, stores: Stores) -> JobExecutor:
    return JobExecutor(
        simulations=stores.simulations,
        poll_stats=stores.poll_stats,
        export_store=LocalExportStore(settings.jobs.export_dir),
        batch_size=settings.jobs.batch_size,
    )


def _bootstrap(
    config_path: str | None,
    overrides: dict[str, Any] | None,
) -> Settings:
    settings = load_settings(config_path=config_path, overrides=overrides)
    settings.validate_secrets()
    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )
    return settings


# ---------------------------------------------------------------------------
# API side
# ---------------------------------------------------------------------------

@dataclass
class ApiContext:
    """Request-side entry points bound to settings, stores and the bus."""

    settings: Settings
    stores: Stores
    bus: EventBus

    async def start_job(
        self,
        params: JobParams,
        user: Mapping[str, Any] | None = None,
    ) -> Job:
        return await start_job(
            params,
            jobs=self.stores.jobs,
            bus=self.bus,
            secret=self.settings.jobs.secret,
            user=user,
            reuse_window=timedelta(minutes=self.settings.jobs.reuse_window_minutes),
        )

    async def get_job(self, job_id: str) -> Job:
        return await get_job(job_id, jobs=self.stores.jobs)

    async def save_simulation(
        self,
        simulation: Simulation,
        *,
        user: UserRef,
        origin: str,
        poll_ids: Sequence[str] | None = None,
    ) -> list[HandlerOutcome]:
        return await save_simulation(
            simulation,
            user=user,
            origin=origin,
            simulations=self.stores.simulations,
            bus=self.bus,
            poll_ids=poll_ids,
        )


def build_api(
    settings: Settings,
    stores: Stores,
    channel: IChannel,
    *,
    sender: INotificationSender | None = None,
) -> ApiContext:
    """Wire the emitting process: local handlers plus the relay publisher."""
    bus = EventBus(handler_timeout=settings.bus.handler_timeout_seconds)
    register_api_handlers(
        bus,
        publisher=RelayPublisher(channel),
        sender=sender or LoggingNotificationSender(),
        poll_stats=stores.poll_stats,
    )
    return ApiContext(settings=settings, stores=stores, bus=bus)


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------

async def run_worker(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> None:
    """Run the relay subscriber loop until SIGINT/SIGTERM."""
    settings = _bootstrap(config_path, overrides)
    logger.info(
        "Starting eventpipe worker (relay=%s channel=%s)",
        settings.relay.backend.value,
        settings.relay.channel,
    )

    stores = await open_stores(settings)
    channel = create_channel(
        settings.relay.backend,
        settings.redis_url,
        settings.relay.channel,
    )
    bus = EventBus(handler_timeout=settings.bus.handler_timeout_seconds)
    register_worker_handlers(
        bus,
        executor=build_executor(settings, stores),
        context=JobContext(jobs=stores.jobs),
        contacts=LoggingContactSync(),
        job_timeout=settings.jobs.timeout_seconds,
    )
    subscriber = RelaySubscriber(channel, bus)

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _signal_handler)

    await channel.start()
    loop_task = asyncio.create_task(subscriber.run())
    stop_task = asyncio.create_task(stop_event.wait())

    try:
        await asyncio.wait(
            {loop_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        stop_task.cancel()
        await subscriber.stop()
        try:
            await asyncio.wait_for(loop_task, timeout=_SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Relay subscriber did not stop within %ss", _SHUTDOWN_TIMEOUT)
        finally:
            await bus.flush()
            await channel.stop()
            await close_stores(stores)
            logger.info(
                "Shutdown complete (processed=%d rejected=%d errors=%s)",
                subscriber.messages_processed,
                subscriber.messages_rejected,
                bus.get_error_counts(),
            )


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------

async def run_recompute_stats(
    poll_id: str,
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> PollStats:
    """Rebuild one poll's aggregate from its simulations."""
    settings = _bootstrap(config_path, overrides)
    stores = await open_stores(settings)
    try:
        return await build_executor(settings, stores).recompute_poll_stats(poll_id)
    finally:
        await close_stores(stores)


async def run_job_status(
    job_id: str,
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> Job:
    settings = _bootstrap(config_path, overrides)
    stores = await open_stores(settings)
    try:
        return await get_job(job_id, jobs=stores.jobs)
    finally:
        await close_stores(stores)
