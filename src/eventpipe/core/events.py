"""Event schemas for the side-effect pipeline.

All events inherit from BaseEvent and are frozen Pydantic models. An event
is a ``name`` (class-level tag, the dispatch key and the relay
discriminant) plus an ``attributes`` payload. ``event_id`` and
``timestamp`` identify one instance inside a process and never travel on
the wire.

Events come in pairs: a *local* event handled inside the emitting process,
and a *relay* event with the same attributes and a distinct name that is
published on the shared channel and handled by worker processes.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base for all events. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    name: ClassVar[str] = "event"

    attributes: Any = Field(default_factory=dict)
    event_id: str = Field(default_factory=_uuid)
    timestamp: datetime = Field(default_factory=_now)

    def wire_attributes(self) -> Any:
        """Return the JSON-compatible attribute payload."""
        return self.model_dump(mode="json", include={"attributes"})["attributes"]


# ===========================================================================
# Attribute payloads
# ===========================================================================

class UserRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str | None = None
    name: str | None = None


class SimulationRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    progression: float = 1.0
    computed_results: dict[str, Any] = Field(default_factory=dict)


class SimulationUpsertedAttributes(BaseModel):
    model_config = ConfigDict(frozen=True)

    origin: str
    user: UserRef
    simulation: SimulationRef
    # Results before the upsert, None for a brand new simulation
    previous_computed_results: dict[str, Any] | None = None
    poll_ids: list[str] = Field(default_factory=list)


class JobStartedAttributes(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str


# ===========================================================================
# Simulations
# ===========================================================================

class SimulationUpsertedEvent(BaseEvent):
    """A simulation was created or updated by a user."""

    name: ClassVar[str] = "simulation.upserted"

    attributes: SimulationUpsertedAttributes


class SimulationUpsertedRelayEvent(BaseEvent):
    """Worker-side counterpart of :class:`SimulationUpsertedEvent`."""

    name: ClassVar[str] = "relay.simulation.upserted"

    attributes: SimulationUpsertedAttributes


# ===========================================================================
# Jobs
# ===========================================================================

class JobStartedEvent(BaseEvent):
    """A background job was created and awaits execution."""

    name: ClassVar[str] = "job.started"

    attributes: JobStartedAttributes


class JobStartedRelayEvent(BaseEvent):
    """Worker-side counterpart of :class:`JobStartedEvent`."""

    name: ClassVar[str] = "relay.job.started"

    attributes: JobStartedAttributes
