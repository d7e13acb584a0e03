"""SQLAlchemy ORM models for the pipeline's backing store.

String primary keys, UTC timestamps, and JSON payload columns (JSONB on
PostgreSQL). Simulations are read in id order by the batch iterator, so
``(poll_id, id)`` is indexed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSONType = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# JobRecord
# ---------------------------------------------------------------------------

class JobRecord(Base):
    """Persisted background job.

    Status transitions are conditional UPDATEs on the current status, so
    concurrent workers racing for the same job cannot both claim it.
    """

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(64), nullable=False)
    params: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    result: Mapped[Any | None] = mapped_column(JSONType, nullable=True)
    executions: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        Index("ix_jobs_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<JobRecord {self.id} {self.kind} {self.status}>"


# ---------------------------------------------------------------------------
# SimulationRecord
# ---------------------------------------------------------------------------

class SimulationRecord(Base):
    __tablename__ = "simulations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    poll_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    progression: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    computed_results: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    __table_args__ = (
        Index("ix_simulations_poll_id_id", "poll_id", "id"),
    )

    def __repr__(self) -> str:
        return f"<SimulationRecord {self.id} poll={self.poll_id}>"


# ---------------------------------------------------------------------------
# PollStatsRecord
# ---------------------------------------------------------------------------

class PollStatsRecord(Base):
    __tablename__ = "poll_stats"

    poll_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    stats: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    simulation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    def __repr__(self) -> str:
        return f"<PollStatsRecord {self.poll_id} n={self.simulation_count}>"
