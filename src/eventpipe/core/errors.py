"""Custom exception hierarchy for the event pipeline."""


class EventPipeError(Exception):
    """Base exception for all event pipeline errors."""


# --- Configuration ---
class ConfigError(EventPipeError):
    """Invalid or missing configuration, or invalid wiring."""


# --- Relay ---
class RelayError(EventPipeError):
    """Cross-process relay failure."""


class RelayDecodeError(RelayError):
    """A relayed message could not be decoded into an event."""


class UnknownEventError(RelayError):
    """A relayed message names an event outside the allow-list."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown relay event: {name!r}")


# --- Jobs ---
class JobError(EventPipeError):
    """Background job error."""


class JobNotFoundError(JobError):
    """No job exists for the given id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobStateError(JobError):
    """A job status transition was not allowed from the current status."""


# --- Storage ---
class StorageError(EventPipeError):
    """Backing store error."""
