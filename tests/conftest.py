"""Shared fixtures for the eventpipe test suite."""

from __future__ import annotations

import pytest

from eventpipe.adapters.export_store import LocalExportStore
from eventpipe.adapters.notifications import LoggingContactSync, LoggingNotificationSender
from eventpipe.bus.event_bus import EventBus
from eventpipe.bus.memory_channel import MemoryChannel
from eventpipe.storage.memory import (
    InMemoryJobRepository,
    InMemoryPollStatsRepository,
    InMemorySimulationRepository,
)


# ---------------------------------------------------------------------------
# Bus and channel
# ---------------------------------------------------------------------------

@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def channel() -> MemoryChannel:
    return MemoryChannel(record=True)


# ---------------------------------------------------------------------------
# Stores and collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def job_repo() -> InMemoryJobRepository:
    return InMemoryJobRepository()


@pytest.fixture
def simulation_repo() -> InMemorySimulationRepository:
    return InMemorySimulationRepository()


@pytest.fixture
def poll_stats_repo() -> InMemoryPollStatsRepository:
    return InMemoryPollStatsRepository()


@pytest.fixture
def export_store(tmp_path) -> LocalExportStore:
    return LocalExportStore(tmp_path / "exports")


@pytest.fixture
def sender() -> LoggingNotificationSender:
    return LoggingNotificationSender(record=True)


@pytest.fixture
def contacts() -> LoggingContactSync:
    return LoggingContactSync(record=True)
