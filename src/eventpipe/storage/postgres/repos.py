"""SQL repositories implementing the backing-store protocols.

Each repository opens one short transaction per call through
:func:`~eventpipe.storage.postgres.connection.session_scope`. Job status
transitions are conditional UPDATEs (``WHERE status = <expected>``); a
transition that matched no row returns ``None``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventpipe.core.enums import JobStatus
from eventpipe.core.errors import JobStateError
from eventpipe.core.models import (
    Job,
    JobParams,
    PollStats,
    Simulation,
    job_params_adapter,
)

from .connection import session_scope
from .models import JobRecord, PollStatsRecord, SimulationRecord

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def _record_to_job(record: JobRecord) -> Job:
    return Job(
        id=record.id,
        params=job_params_adapter.validate_python(record.params),
        status=JobStatus(record.status),
        result=record.result,
        executions=record.executions,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _record_to_simulation(record: SimulationRecord) -> Simulation:
    return Simulation(
        id=record.id,
        poll_id=record.poll_id,
        user_email=record.user_email,
        progression=record.progression,
        computed_results=dict(record.computed_results or {}),
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _record_to_poll_stats(record: PollStatsRecord) -> PollStats:
    return PollStats(
        poll_id=record.poll_id,
        stats=dict(record.stats or {}),
        simulation_count=record.simulation_count,
        updated_at=record.updated_at,
    )


# ---------------------------------------------------------------------------
# SqlJobRepository
# ---------------------------------------------------------------------------

class SqlJobRepository:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def create_job(self, job_id: str, params: JobParams) -> Job:
        now = _now()
        payload = params.model_dump(mode="json")
        async with session_scope(self._sessions) as session:
            record = await session.get(JobRecord, job_id, with_for_update=True)
            if record is None:
                record = JobRecord(
                    id=job_id,
                    kind=params.kind,
                    params=payload,
                    status=JobStatus.CREATED.value,
                    result=None,
                    executions=1,
                    created_at=now,
                    updated_at=now,
                )
                session.add(record)
            else:
                record.kind = params.kind
                record.params = payload
                record.status = JobStatus.CREATED.value
                record.result = None
                record.executions = record.executions + 1
                record.updated_at = now
            await session.flush()
            return _record_to_job(record)

    async def get_job(self, job_id: str) -> Job | None:
        async with session_scope(self._sessions) as session:
            record = await session.get(JobRecord, job_id)
            return _record_to_job(record) if record is not None else None

    async def get_existing_job(
        self, job_id: str, *, since: datetime
    ) -> Job | None:
        stmt = select(JobRecord).where(
            JobRecord.id == job_id,
            JobRecord.status.in_(
                [JobStatus.CREATED.value, JobStatus.RUNNING.value]
            ),
            JobRecord.updated_at >= since,
        )
        async with session_scope(self._sessions) as session:
            record = (await session.execute(stmt)).scalar_one_or_none()
            return _record_to_job(record) if record is not None else None

    async def start_job(self, job_id: str) -> Job | None:
        return await self._transition(job_id, JobStatus.CREATED, JobStatus.RUNNING)

    async def stop_job(
        self, job_id: str, *, status: JobStatus, result: Any
    ) -> Job | None:
        if not status.is_terminal:
            raise JobStateError(f"stop_job needs a terminal status, got {status}")
        return await self._transition(
            job_id, JobStatus.RUNNING, status, result=result
        )

    async def _transition(
        self,
        job_id: str,
        expected: JobStatus,
        status: JobStatus,
        **changes: Any,
    ) -> Job | None:
        stmt = (
            update(JobRecord)
            .where(JobRecord.id == job_id, JobRecord.status == expected.value)
            .values(status=status.value, updated_at=_now(), **changes)
            .execution_options(synchronize_session=False)
        )
        async with session_scope(self._sessions) as session:
            outcome = await session.execute(stmt)
            if outcome.rowcount != 1:
                logger.debug(
                    "Job %s transition %s -> %s matched no row",
                    job_id,
                    expected.value,
                    status.value,
                )
                return None
            record = await session.get(JobRecord, job_id)
            return _record_to_job(record) if record is not None else None


# ---------------------------------------------------------------------------
# SqlSimulationRepository
# ---------------------------------------------------------------------------

class SqlSimulationRepository:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def upsert_simulation(self, simulation: Simulation) -> Simulation | None:
        now = _now()
        async with session_scope(self._sessions) as session:
            record = await session.get(
                SimulationRecord, simulation.id, with_for_update=True
            )
            previous = _record_to_simulation(record) if record is not None else None
            if record is None:
                record = SimulationRecord(id=simulation.id, created_at=now)
                session.add(record)
            record.poll_id = simulation.poll_id
            record.user_email = simulation.user_email
            record.progression = simulation.progression
            record.computed_results = simulation.computed_results
            record.updated_at = now
            return previous

    async def get_simulation(self, simulation_id: str) -> Simulation | None:
        async with session_scope(self._sessions) as session:
            record = await session.get(SimulationRecord, simulation_id)
            return _record_to_simulation(record) if record is not None else None

    async def fetch_poll_simulations(
        self,
        poll_id: str,
        *,
        take: int,
        skip: int,
        cursor: str | None,
    ) -> Sequence[Simulation]:
        stmt = select(SimulationRecord).where(SimulationRecord.poll_id == poll_id)
        if cursor is not None:
            stmt = stmt.where(SimulationRecord.id >= cursor)
        stmt = stmt.order_by(SimulationRecord.id).offset(skip).limit(take)

        async with session_scope(self._sessions) as session:
            records = (await session.execute(stmt)).scalars().all()
            return [_record_to_simulation(r) for r in records]


# ---------------------------------------------------------------------------
# SqlPollStatsRepository
# ---------------------------------------------------------------------------

class SqlPollStatsRepository:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def get_poll_stats(self, poll_id: str) -> PollStats | None:
        async with session_scope(self._sessions) as session:
            record = await session.get(PollStatsRecord, poll_id)
            return _record_to_poll_stats(record) if record is not None else None

    async def save_poll_stats(self, stats: PollStats) -> PollStats:
        async with session_scope(self._sessions) as session:
            record = await session.merge(
                PollStatsRecord(
                    poll_id=stats.poll_id,
                    stats=stats.stats,
                    simulation_count=stats.simulation_count,
                    updated_at=_now(),
                )
            )
            await session.flush()
            return _record_to_poll_stats(record)
