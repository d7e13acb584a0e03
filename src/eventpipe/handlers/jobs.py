"""Worker-side job trigger handler."""

from __future__ import annotations

from eventpipe.core.events import BaseEvent, JobStartedAttributes
from eventpipe.core.models import Job
from eventpipe.jobs.runner import Executor, JobContext, run_job


class RunStartedJob:
    """Runs the job named by a relayed :class:`JobStartedRelayEvent`."""

    def __init__(self, executor: Executor, context: JobContext) -> None:
        self._executor = executor
        self._context = context

    async def __call__(self, event: BaseEvent) -> Job | None:
        attributes = event.attributes
        if not isinstance(attributes, JobStartedAttributes):
            attributes = JobStartedAttributes.model_validate(attributes)
        return await run_job(attributes.job_id, self._executor, self._context)
