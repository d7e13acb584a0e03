"""Test the in-memory repositories."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from eventpipe.core.enums import JobStatus
from eventpipe.core.errors import JobStateError
from eventpipe.core.models import PollStats, RecomputePollStatsParams, Simulation


def _params():
    return RecomputePollStatsParams(poll_id="poll-1")


class TestInMemoryJobRepository:
    async def test_create_and_get(self, job_repo):
        job = await job_repo.create_job("job-1", _params())

        assert job.status == JobStatus.CREATED
        assert job.executions == 1
        assert (await job_repo.get_job("job-1")) == job

    async def test_transitions_are_compare_and_set(self, job_repo):
        await job_repo.create_job("job-1", _params())

        assert (await job_repo.start_job("job-1")).status == JobStatus.RUNNING
        assert await job_repo.start_job("job-1") is None

        stopped = await job_repo.stop_job("job-1", status=JobStatus.SUCCEEDED, result=1)
        assert stopped.status == JobStatus.SUCCEEDED
        assert await job_repo.stop_job("job-1", status=JobStatus.FAILED, result=2) is None
        assert (await job_repo.get_job("job-1")).result == 1

    async def test_stop_requires_terminal_status(self, job_repo):
        await job_repo.create_job("job-1", _params())
        await job_repo.start_job("job-1")

        with pytest.raises(JobStateError):
            await job_repo.stop_job("job-1", status=JobStatus.RUNNING, result=None)

    async def test_unknown_job_transitions(self, job_repo):
        assert await job_repo.start_job("nope") is None
        assert await job_repo.get_job("nope") is None

    async def test_recreate_starts_new_execution(self, job_repo):
        await job_repo.create_job("job-1", _params())
        await job_repo.start_job("job-1")
        await job_repo.stop_job("job-1", status=JobStatus.FAILED, result={"error": "x"})

        job = await job_repo.create_job("job-1", _params())

        assert job.status == JobStatus.CREATED
        assert job.result is None
        assert job.executions == 2

    async def test_get_existing_job(self, job_repo):
        await job_repo.create_job("job-1", _params())
        now = datetime.now(timezone.utc)

        assert await job_repo.get_existing_job("job-1", since=now - timedelta(minutes=5))
        assert await job_repo.get_existing_job("job-1", since=now + timedelta(minutes=1)) is None

        await job_repo.start_job("job-1")
        await job_repo.stop_job("job-1", status=JobStatus.SUCCEEDED, result=None)
        assert await job_repo.get_existing_job("job-1", since=now - timedelta(minutes=5)) is None

    async def test_returned_jobs_are_copies(self, job_repo):
        job = await job_repo.create_job("job-1", _params())
        job.result = {"tampered": True}

        assert (await job_repo.get_job("job-1")).result is None


class TestInMemorySimulationRepository:
    async def test_upsert_returns_previous_version(self, simulation_repo):
        assert await simulation_repo.upsert_simulation(
            Simulation(id="sim-1", computed_results={"bilan": 1.0})
        ) is None

        previous = await simulation_repo.upsert_simulation(
            Simulation(id="sim-1", computed_results={"bilan": 2.0})
        )

        assert previous.computed_results == {"bilan": 1.0}
        assert (await simulation_repo.get_simulation("sim-1")).computed_results == {"bilan": 2.0}

    async def test_fetch_includes_cursor_unless_skipped(self, simulation_repo):
        for sim_id in ("c", "a", "b"):
            await simulation_repo.upsert_simulation(Simulation(id=sim_id, poll_id="p"))

        page = await simulation_repo.fetch_poll_simulations("p", take=10, skip=0, cursor="b")
        assert [s.id for s in page] == ["b", "c"]

        page = await simulation_repo.fetch_poll_simulations("p", take=10, skip=1, cursor="b")
        assert [s.id for s in page] == ["c"]

    async def test_fetch_filters_by_poll(self, simulation_repo):
        await simulation_repo.upsert_simulation(Simulation(id="a", poll_id="p"))
        await simulation_repo.upsert_simulation(Simulation(id="b", poll_id="q"))

        page = await simulation_repo.fetch_poll_simulations("p", take=10, skip=0, cursor=None)

        assert [s.id for s in page] == ["a"]

    async def test_delete(self, simulation_repo):
        await simulation_repo.upsert_simulation(Simulation(id="a", poll_id="p"))
        await simulation_repo.delete_simulation("a")

        assert await simulation_repo.get_simulation("a") is None


class TestInMemoryPollStatsRepository:
    async def test_save_and_get(self, poll_stats_repo):
        await poll_stats_repo.save_poll_stats(
            PollStats(poll_id="p", stats={"bilan": 1.0}, simulation_count=1)
        )

        stats = await poll_stats_repo.get_poll_stats("p")

        assert stats.stats == {"bilan": 1.0}
        assert stats.simulation_count == 1

    async def test_missing(self, poll_stats_repo):
        assert await poll_stats_repo.get_poll_stats("p") is None
