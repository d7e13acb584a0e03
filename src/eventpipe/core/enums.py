"""Enumerations used across the event pipeline."""

from enum import Enum


class ChannelBackend(str, Enum):
    MEMORY = "memory"  # Single process, no external deps
    REDIS = "redis"


class JobKind(str, Enum):
    DOWNLOAD_POLL_SIMULATIONS_RESULT = "download_poll_simulations_result"
    RECOMPUTE_POLL_STATS = "recompute_poll_stats"


class JobStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)
