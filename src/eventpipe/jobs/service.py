"""Job creation on the request side.

A job id is derived from its parameters and the requesting user, so the
same request made twice maps onto the same job. A request made while that
job is still queued or running returns it as-is; otherwise a new execution
is recorded and a :class:`JobStartedEvent` is emitted for the relay.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

from eventpipe.bus.event_bus import EventBus
from eventpipe.core.errors import JobNotFoundError
from eventpipe.core.events import JobStartedAttributes, JobStartedEvent
from eventpipe.core.interfaces import IJobRepository
from eventpipe.core.models import Job, JobParams

logger = logging.getLogger(__name__)

DEFAULT_REUSE_WINDOW = timedelta(minutes=5)


def get_job_id(
    params: JobParams,
    user: Mapping[str, Any] | None = None,
    *,
    secret: str,
) -> str:
    """Deterministic job id: sha256 of the secret and the encoded request."""
    fields = {**params.model_dump(mode="json"), **(user or {})}
    key = urlencode([(k, str(v)) for k, v in fields.items()])
    return hashlib.sha256(f"{secret}{key}".encode()).hexdigest()


async def start_job(
    params: JobParams,
    *,
    jobs: IJobRepository,
    bus: EventBus,
    secret: str,
    user: Mapping[str, Any] | None = None,
    reuse_window: timedelta = DEFAULT_REUSE_WINDOW,
) -> Job:
    """Create (or reuse) the job for *params* and announce it.

    Returns once the :class:`JobStartedEvent` handlers have settled, which
    for the relay publisher means the trigger has been handed to the
    channel.
    """
    job_id = get_job_id(params, user, secret=secret)

    since = datetime.now(timezone.utc) - reuse_window
    existing = await jobs.get_existing_job(job_id, since=since)
    if existing is not None:
        logger.info("Reusing job %s (%s)", job_id, existing.status.value)
        return existing

    job = await jobs.create_job(job_id, params)
    logger.info(
        "Created job %s (%s) execution=%d",
        job.id,
        job.kind.value,
        job.executions,
    )

    await bus.emit(JobStartedEvent(attributes=JobStartedAttributes(job_id=job.id)))
    return job


async def get_job(job_id: str, *, jobs: IJobRepository) -> Job:
    """Return job *job_id* for status polling.

    Raises:
        JobNotFoundError: If no job has that id.
    """
    job = await jobs.get_job(job_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job
