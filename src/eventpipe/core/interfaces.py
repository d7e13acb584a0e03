"""Protocol interfaces for the event pipeline's external collaborators.

The backing store, notification senders, contact sync and export storage
live outside the core. Implementations can be swapped (in-memory, SQL,
HTTP clients) without changing callers.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from .enums import JobStatus
from .models import Job, JobParams, PollStats, Simulation


# ---------------------------------------------------------------------------
# Backing store
# ---------------------------------------------------------------------------

@runtime_checkable
class IJobRepository(Protocol):
    """Job persistence with compare-and-set status transitions."""

    async def create_job(self, job_id: str, params: JobParams) -> Job:
        """Insert a job, or start a new execution of an existing one."""
        ...

    async def get_job(self, job_id: str) -> Job | None: ...

    async def get_existing_job(
        self, job_id: str, *, since: datetime
    ) -> Job | None:
        """Return the job if created/running and its execution began after *since*."""
        ...

    async def start_job(self, job_id: str) -> Job | None:
        """Move created → running. ``None`` if the job was not created."""
        ...

    async def stop_job(
        self, job_id: str, *, status: JobStatus, result: Any
    ) -> Job | None:
        """Move running → *status*. ``None`` if the job was not running."""
        ...


@runtime_checkable
class ISimulationRepository(Protocol):
    async def upsert_simulation(self, simulation: Simulation) -> Simulation | None:
        """Persist *simulation*, returning the previous version if any."""
        ...

    async def get_simulation(self, simulation_id: str) -> Simulation | None: ...

    async def fetch_poll_simulations(
        self,
        poll_id: str,
        *,
        take: int,
        skip: int,
        cursor: str | None,
    ) -> Sequence[Simulation]:
        """One page of a poll's simulations ordered by id.

        The cursor record is included unless skipped.
        """
        ...


@runtime_checkable
class IPollStatsRepository(Protocol):
    async def get_poll_stats(self, poll_id: str) -> PollStats | None: ...

    async def save_poll_stats(self, stats: PollStats) -> PollStats: ...


# ---------------------------------------------------------------------------
# Outbound collaborators
# ---------------------------------------------------------------------------

@runtime_checkable
class INotificationSender(Protocol):
    async def send_simulation_upserted(
        self,
        *,
        email: str,
        origin: str,
        simulation_id: str,
        poll_ids: Sequence[str] = (),
    ) -> None: ...


@runtime_checkable
class IContactSync(Protocol):
    async def upsert_contact(self, *, email: str, attributes: dict[str, Any]) -> None:
        ...


@runtime_checkable
class IExportStore(Protocol):
    async def put(self, key: str, content: bytes, *, content_type: str) -> str:
        """Store *content* under *key* and return a retrievable URL."""
        ...
