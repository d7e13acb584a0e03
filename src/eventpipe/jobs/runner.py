"""Job runner: load a job, execute it once, record a terminal status.

The trigger reaches every worker (the relay is fan-out) and may be
delivered again later, so the runner is idempotent: a terminal job is
skipped, and the created → running transition is a compare-and-set in the
store, so only one worker ever executes a given execution of a job.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from eventpipe.core.enums import JobStatus
from eventpipe.core.interfaces import IJobRepository
from eventpipe.core.models import Job

logger = logging.getLogger(__name__)

Executor = Callable[[Job], Awaitable[Any]]


@dataclass
class JobContext:
    """Backing-store access for one job run."""

    jobs: IJobRepository


async def run_job(job_id: str, executor: Executor, context: JobContext) -> Job | None:
    """Run job *job_id* with *executor* unless it already ran.

    Returns the job as last persisted by this call, or ``None`` when the job
    does not exist. Executor errors are recorded as a ``failed`` status and
    logged; they are never raised to the caller. Cancellation (a handler
    deadline or shutdown) is recorded as ``failed`` and then re-raised.
    """
    job = await context.jobs.get_job(job_id)
    if job is None:
        logger.error("Job %s not found, skipping", job_id)
        return None

    if job.status.is_terminal:
        logger.info("Job %s already %s, skipping", job_id, job.status.value)
        return job

    started = await context.jobs.start_job(job_id)
    if started is None:
        # Claimed by another worker, or finished meanwhile
        logger.info("Job %s not in created state, skipping", job_id)
        return await context.jobs.get_job(job_id)

    logger.info("Job %s (%s) running", job_id, started.kind.value)
    t0 = time.monotonic()

    try:
        result = await executor(started)
    except asyncio.CancelledError:
        logger.error(
            "Job %s (%s) cancelled after %.2fs",
            job_id,
            started.kind.value,
            time.monotonic() - t0,
        )
        await context.jobs.stop_job(
            job_id, status=JobStatus.FAILED, result={"error": "cancelled"}
        )
        raise
    except Exception as exc:
        logger.exception("Job %s (%s) failed", job_id, started.kind.value)
        stopped = await context.jobs.stop_job(
            job_id,
            status=JobStatus.FAILED,
            result={"error": f"{type(exc).__name__}: {exc}"},
        )
    else:
        stopped = await context.jobs.stop_job(
            job_id, status=JobStatus.SUCCEEDED, result=result
        )
        logger.info(
            "Job %s (%s) succeeded in %.2fs",
            job_id,
            started.kind.value,
            time.monotonic() - t0,
        )

    if stopped is None:
        logger.warning("Job %s left running state before completion", job_id)
        return await context.jobs.get_job(job_id)
    return stopped
