"""Core domain models used across the event pipeline.

These are the canonical records exchanged with the backing store. Store
implementations convert to and from these types; nothing storage-specific
leaks out.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from .enums import JobKind, JobStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Job parameters (one model per kind, discriminated by ``kind``)
# ---------------------------------------------------------------------------

class DownloadPollSimulationsParams(BaseModel):
    kind: Literal["download_poll_simulations_result"] = (
        "download_poll_simulations_result"
    )
    organisation_id: str
    poll_id: str


class RecomputePollStatsParams(BaseModel):
    kind: Literal["recompute_poll_stats"] = "recompute_poll_stats"
    poll_id: str


JobParams = Annotated[
    Union[DownloadPollSimulationsParams, RecomputePollStatsParams],
    Field(discriminator="kind"),
]

job_params_adapter: TypeAdapter[JobParams] = TypeAdapter(JobParams)


# ---------------------------------------------------------------------------
# Job
# ---------------------------------------------------------------------------

class Job(BaseModel):
    """Persisted unit of background work.

    ``status`` only moves forward within one execution:
    created → running → succeeded | failed. Re-creating a job with the same
    id starts a new execution.
    """

    id: str
    params: JobParams
    status: JobStatus = JobStatus.CREATED
    result: Any = None
    executions: int = 1
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def kind(self) -> JobKind:
        return JobKind(self.params.kind)


# ---------------------------------------------------------------------------
# Simulations and poll aggregates
# ---------------------------------------------------------------------------

class Simulation(BaseModel):
    """A user's footprint simulation, the bulk record walked by jobs."""

    id: str
    poll_id: str | None = None
    user_email: str | None = None
    progression: float = 1.0
    computed_results: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class PollStats(BaseModel):
    """Running aggregate of a poll's simulation results."""

    poll_id: str
    stats: dict[str, Any] = Field(default_factory=dict)
    simulation_count: int = 0
    updated_at: datetime = Field(default_factory=_now)
