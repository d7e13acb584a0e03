"""In-memory backing store for tests and single-process mode.

Every read returns a deep copy, so callers never mutate stored state
behind the store's back. Job transitions are compare-and-set, like the SQL
implementation.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from eventpipe.core.enums import JobStatus
from eventpipe.core.errors import JobStateError
from eventpipe.core.models import Job, JobParams, PollStats, Simulation


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryJobRepository:
    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}

    async def create_job(self, job_id: str, params: JobParams) -> Job:
        existing = self._jobs.get(job_id)
        now = _now()
        if existing is None:
            job = Job(id=job_id, params=params, created_at=now, updated_at=now)
        else:
            job = existing.model_copy(
                update={
                    "params": params,
                    "status": JobStatus.CREATED,
                    "result": None,
                    "executions": existing.executions + 1,
                    "updated_at": now,
                }
            )
        self._jobs[job_id] = job
        return job.model_copy(deep=True)

    async def get_job(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    async def get_existing_job(
        self, job_id: str, *, since: datetime
    ) -> Job | None:
        job = self._jobs.get(job_id)
        if (
            job is None
            or job.status.is_terminal
            or job.updated_at < since
        ):
            return None
        return job.model_copy(deep=True)

    async def start_job(self, job_id: str) -> Job | None:
        return self._transition(job_id, JobStatus.CREATED, JobStatus.RUNNING)

    async def stop_job(
        self, job_id: str, *, status: JobStatus, result: Any
    ) -> Job | None:
        if not status.is_terminal:
            raise JobStateError(f"stop_job needs a terminal status, got {status}")
        return self._transition(job_id, JobStatus.RUNNING, status, result=result)

    def _transition(
        self,
        job_id: str,
        expected: JobStatus,
        status: JobStatus,
        **changes: Any,
    ) -> Job | None:
        job = self._jobs.get(job_id)
        if job is None or job.status != expected:
            return None
        job = job.model_copy(
            update={"status": status, "updated_at": _now(), **changes}
        )
        self._jobs[job_id] = job
        return job.model_copy(deep=True)

    # Testing helpers
    def all_jobs(self) -> list[Job]:
        return [j.model_copy(deep=True) for j in self._jobs.values()]


class InMemorySimulationRepository:
    def __init__(self, simulations: Sequence[Simulation] = ()) -> None:
        self._simulations: dict[str, Simulation] = {}
        for simulation in simulations:
            self._simulations[simulation.id] = simulation.model_copy(deep=True)
        self.fetch_calls: list[dict[str, Any]] = []

    async def upsert_simulation(self, simulation: Simulation) -> Simulation | None:
        previous = self._simulations.get(simulation.id)
        self._simulations[simulation.id] = simulation.model_copy(
            update={"updated_at": _now()}, deep=True
        )
        return previous.model_copy(deep=True) if previous is not None else None

    async def get_simulation(self, simulation_id: str) -> Simulation | None:
        simulation = self._simulations.get(simulation_id)
        return simulation.model_copy(deep=True) if simulation is not None else None

    async def delete_simulation(self, simulation_id: str) -> None:
        self._simulations.pop(simulation_id, None)

    async def fetch_poll_simulations(
        self,
        poll_id: str,
        *,
        take: int,
        skip: int,
        cursor: str | None,
    ) -> Sequence[Simulation]:
        self.fetch_calls.append({"take": take, "skip": skip, "cursor": cursor})
        rows = sorted(
            (s for s in self._simulations.values() if s.poll_id == poll_id),
            key=lambda s: s.id,
        )
        if cursor is not None:
            rows = [s for s in rows if s.id >= cursor]
        return [s.model_copy(deep=True) for s in rows[skip : skip + take]]


class InMemoryPollStatsRepository:
    def __init__(self) -> None:
        self._stats: dict[str, PollStats] = {}

    async def get_poll_stats(self, poll_id: str) -> PollStats | None:
        stats = self._stats.get(poll_id)
        return stats.model_copy(deep=True) if stats is not None else None

    async def save_poll_stats(self, stats: PollStats) -> PollStats:
        saved = stats.model_copy(update={"updated_at": _now()}, deep=True)
        self._stats[stats.poll_id] = saved
        return saved.model_copy(deep=True)
