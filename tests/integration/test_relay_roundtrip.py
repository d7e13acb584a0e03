"""Integration test: API process -> channel -> worker processes.

Two buses stand in for two processes. They share only the channel and the
backing store, exactly like an API server and its workers.
"""

from __future__ import annotations

import asyncio

import pytest

from eventpipe.bus.event_bus import EventBus
from eventpipe.bus.relay import RelayPublisher, RelaySubscriber
from eventpipe.core.enums import JobStatus
from eventpipe.core.events import UserRef
from eventpipe.core.models import (
    DownloadPollSimulationsParams,
    RecomputePollStatsParams,
    Simulation,
)
from eventpipe.handlers.wiring import register_api_handlers, register_worker_handlers
from eventpipe.jobs.executors import JobExecutor
from eventpipe.jobs.runner import JobContext
from eventpipe.jobs.service import start_job
from eventpipe.simulations.service import save_simulation

SECRET = "test-secret"
USER = UserRef(id="user-1", email="jean@example.org")


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    async def _poll():
        while not await predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


class _CountingExecutor:
    """Wraps a JobExecutor and records every job it executes."""

    def __init__(self, inner: JobExecutor):
        self._inner = inner
        self.executed: list[str] = []

    async def __call__(self, job):
        self.executed.append(job.id)
        return await self._inner(job)


@pytest.fixture
async def pipeline(
    channel, job_repo, simulation_repo, poll_stats_repo, export_store, sender, contacts
):
    api_bus = EventBus(handler_timeout=5)
    register_api_handlers(
        api_bus,
        publisher=RelayPublisher(channel),
        sender=sender,
        poll_stats=poll_stats_repo,
    )

    executor = _CountingExecutor(
        JobExecutor(simulation_repo, poll_stats_repo, export_store, batch_size=2)
    )
    subscribers, tasks = [], []
    # Two workers: the relay is fan-out, every worker sees every message
    for _ in range(2):
        worker_bus = EventBus(handler_timeout=5)
        register_worker_handlers(
            worker_bus,
            executor=executor,
            context=JobContext(jobs=job_repo),
            contacts=contacts,
        )
        subscriber = RelaySubscriber(channel, worker_bus)
        tasks.append(asyncio.create_task(subscriber.run()))
        await asyncio.wait_for(subscriber.ready.wait(), timeout=1)
        subscribers.append(subscriber)

    yield api_bus, executor, subscribers

    for subscriber in subscribers:
        await subscriber.stop()
    await asyncio.wait_for(asyncio.gather(*tasks), timeout=2)


class TestJobRoundTrip:
    async def test_started_job_runs_once_across_workers(
        self, pipeline, job_repo, simulation_repo, tmp_path
    ):
        api_bus, executor, subscribers = pipeline
        for i in range(5):
            await simulation_repo.upsert_simulation(
                Simulation(id=f"sim-{i}", poll_id="poll-1", computed_results={"bilan": 1.0})
            )

        job = await start_job(
            DownloadPollSimulationsParams(organisation_id="org-1", poll_id="poll-1"),
            jobs=job_repo,
            bus=api_bus,
            secret=SECRET,
            user={"userId": USER.id},
        )

        async def finished():
            stored = await job_repo.get_job(job.id)
            return stored.status.is_terminal and all(
                s.messages_processed == 1 for s in subscribers
            )

        await _wait_until(finished)

        stored = await job_repo.get_job(job.id)
        assert stored.status == JobStatus.SUCCEEDED
        assert stored.result["count"] == 5
        assert (tmp_path / "exports" / stored.result["key"]).exists()
        assert executor.executed == [job.id]

    async def test_redelivered_trigger_is_a_no_op(self, pipeline, job_repo, channel):
        api_bus, executor, subscribers = pipeline

        job = await start_job(
            RecomputePollStatsParams(poll_id="poll-1"),
            jobs=job_repo,
            bus=api_bus,
            secret=SECRET,
        )

        async def finished():
            return all(s.messages_processed == 1 for s in subscribers)

        await _wait_until(finished)

        # Replay the exact wire message, as a duplicate delivery would
        await channel.publish(channel.get_history()[-1])

        async def replayed():
            return all(s.messages_processed == 2 for s in subscribers)

        await _wait_until(replayed)

        assert executor.executed == [job.id]
        assert (await job_repo.get_job(job.id)).status == JobStatus.SUCCEEDED


class TestSimulationRoundTrip:
    async def test_local_and_relayed_side_effects(
        self, pipeline, simulation_repo, poll_stats_repo, sender, contacts
    ):
        api_bus, _, subscribers = pipeline

        await save_simulation(
            Simulation(id="sim-1", poll_id="poll-1", computed_results={"bilan": 8000.0}),
            user=USER,
            origin="https://nosgestesclimat.fr",
            simulations=simulation_repo,
            bus=api_bus,
        )
        await save_simulation(
            Simulation(id="sim-1", poll_id="poll-1", computed_results={"bilan": 6000.0}),
            user=USER,
            origin="https://nosgestesclimat.fr",
            simulations=simulation_repo,
            bus=api_bus,
        )

        async def relayed():
            return all(s.messages_processed == 2 for s in subscribers)

        await _wait_until(relayed)

        # Local handlers ran once per save, in the emitting process
        assert len(sender.sent) == 2
        stats = await poll_stats_repo.get_poll_stats("poll-1")
        assert stats.stats == {"bilan": 6000.0}
        assert stats.simulation_count == 1

        # Relayed handler converged on the latest simulation
        assert contacts.contacts["jean@example.org"]["LAST_SIMULATION_ID"] == "sim-1"

    async def test_malformed_message_between_valid_ones(
        self, pipeline, simulation_repo, channel, contacts
    ):
        api_bus, _, subscribers = pipeline

        await channel.publish("definitely not json")
        await save_simulation(
            Simulation(id="sim-2", poll_id="poll-1"),
            user=USER,
            origin="o",
            simulations=simulation_repo,
            bus=api_bus,
        )

        async def relayed():
            return all(s.messages_processed == 1 for s in subscribers)

        await _wait_until(relayed)

        assert all(s.messages_rejected == 1 for s in subscribers)
        assert "jean@example.org" in contacts.contacts
