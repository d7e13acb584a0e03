"""Test deterministic job ids, job reuse and the JobStarted announcement."""

from __future__ import annotations

from datetime import timedelta

import pytest

from eventpipe.core.enums import JobStatus
from eventpipe.core.errors import JobNotFoundError
from eventpipe.core.events import JobStartedEvent
from eventpipe.core.models import DownloadPollSimulationsParams, RecomputePollStatsParams
from eventpipe.jobs.service import get_job, get_job_id, start_job

SECRET = "s3cret"


def _params(poll_id: str = "poll-1") -> DownloadPollSimulationsParams:
    return DownloadPollSimulationsParams(organisation_id="org-1", poll_id=poll_id)


class TestGetJobId:
    def test_deterministic(self):
        user = {"userId": "u1", "email": "u1@example.org"}

        assert get_job_id(_params(), user, secret=SECRET) == get_job_id(
            _params(), dict(user), secret=SECRET
        )

    def test_is_sha256_hex(self):
        job_id = get_job_id(_params(), secret=SECRET)

        assert len(job_id) == 64
        int(job_id, 16)

    def test_depends_on_params_user_and_secret(self):
        base = get_job_id(_params(), {"userId": "u1"}, secret=SECRET)

        assert base != get_job_id(_params("poll-2"), {"userId": "u1"}, secret=SECRET)
        assert base != get_job_id(_params(), {"userId": "u2"}, secret=SECRET)
        assert base != get_job_id(_params(), {"userId": "u1"}, secret="other")

    def test_depends_on_kind(self):
        assert get_job_id(_params(), secret=SECRET) != get_job_id(
            RecomputePollStatsParams(poll_id="poll-1"), secret=SECRET
        )


class TestStartJob:
    async def test_creates_job_and_emits_started(self, job_repo, bus):
        started = []
        bus.on(JobStartedEvent, lambda e: started.append(e.attributes.job_id))

        job = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)

        assert job.status == JobStatus.CREATED
        assert job.id == get_job_id(_params(), secret=SECRET)
        assert started == [job.id]

    async def test_reuses_pending_job(self, job_repo, bus):
        started = []
        bus.on(JobStartedEvent, lambda e: started.append(e.attributes.job_id))

        first = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)
        second = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)

        assert second.id == first.id
        assert second.executions == 1
        assert len(started) == 1

    async def test_reuses_running_job(self, job_repo, bus):
        job = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)
        await job_repo.start_job(job.id)

        again = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)

        assert again.status == JobStatus.RUNNING

    async def test_terminal_job_starts_new_execution(self, job_repo, bus):
        job = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)
        await job_repo.start_job(job.id)
        await job_repo.stop_job(job.id, status=JobStatus.SUCCEEDED, result={"count": 0})

        again = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)

        assert again.status == JobStatus.CREATED
        assert again.executions == 2
        assert again.result is None

    async def test_stale_job_starts_new_execution(self, job_repo, bus):
        await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)

        again = await start_job(
            _params(),
            jobs=job_repo,
            bus=bus,
            secret=SECRET,
            reuse_window=timedelta(seconds=-1),
        )

        assert again.executions == 2

    async def test_waits_for_started_handlers(self, job_repo, bus):
        published = []

        async def relay(event):
            published.append(event.attributes.job_id)

        bus.on(JobStartedEvent, relay)

        job = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)

        assert published == [job.id]


class TestGetJob:
    async def test_returns_job(self, job_repo, bus):
        job = await start_job(_params(), jobs=job_repo, bus=bus, secret=SECRET)

        assert (await get_job(job.id, jobs=job_repo)).id == job.id

    async def test_missing_job_raises(self, job_repo):
        with pytest.raises(JobNotFoundError, match="missing"):
            await get_job("missing", jobs=job_repo)
