"""Kind-specific job work.

:class:`JobExecutor` dispatches a job over the closed :class:`JobKind`
enumeration. The dispatch table is checked when the executor is built, so
a kind without an implementation fails at worker startup rather than when
its first job arrives.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any

from eventpipe.core.deep_merge import AggregateTree, deep_merge_sum
from eventpipe.core.enums import JobKind
from eventpipe.core.errors import ConfigError
from eventpipe.core.interfaces import (
    IExportStore,
    IPollStatsRepository,
    ISimulationRepository,
)
from eventpipe.core.models import (
    DownloadPollSimulationsParams,
    Job,
    PollStats,
    RecomputePollStatsParams,
    Simulation,
)
from eventpipe.core.pagination import DEFAULT_BATCH_SIZE, batch_find_many

logger = logging.getLogger(__name__)

_BASE_COLUMNS = ("id", "user_email", "progression", "created_at", "updated_at")


def flatten_tree(tree: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten a nested mapping into dotted keys."""
    flat: dict[str, Any] = {}
    for key, value in tree.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping):
            flat.update(flatten_tree(value, f"{path}."))
        else:
            flat[path] = value
    return flat


class JobExecutor:
    """Executes a job according to its kind.

    Args:
        simulations: Source of the poll simulations walked by jobs.
        poll_stats: Where recomputed poll aggregates are written.
        export_store: Where download exports are written.
        batch_size: Page size for bulk iteration.
    """

    def __init__(
        self,
        simulations: ISimulationRepository,
        poll_stats: IPollStatsRepository,
        export_store: IExportStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._simulations = simulations
        self._poll_stats = poll_stats
        self._export_store = export_store
        self._batch_size = batch_size

        self._dispatch: dict[JobKind, Callable[[Job], Awaitable[Any]]] = {
            JobKind.DOWNLOAD_POLL_SIMULATIONS_RESULT: self._download_poll_simulations,
            JobKind.RECOMPUTE_POLL_STATS: self._recompute_poll_stats,
        }
        missing = set(JobKind) - set(self._dispatch)
        if missing:
            raise ConfigError(
                f"No executor for job kinds: {sorted(k.value for k in missing)}"
            )

    async def __call__(self, job: Job) -> Any:
        return await self._dispatch[job.kind](job)

    def poll_simulations(self, poll_id: str) -> AsyncIterator[Simulation]:
        """Lazily iterate a poll's simulations in pages."""

        def fetch_page(*, take: int, skip: int, cursor: str | None):
            return self._simulations.fetch_poll_simulations(
                poll_id, take=take, skip=skip, cursor=cursor
            )

        return batch_find_many(fetch_page, batch_size=self._batch_size)

    async def collect_poll_stats(self, poll_id: str) -> tuple[AggregateTree, int]:
        """Fold every simulation of *poll_id* into a fresh aggregate tree."""
        stats: AggregateTree = {}
        count = 0
        async for simulation in self.poll_simulations(poll_id):
            stats = deep_merge_sum(stats, simulation.computed_results)
            count += 1
            if count % 1000 == 0:
                logger.info("Folded %d simulations of poll %s", count, poll_id)
        return stats, count

    async def recompute_poll_stats(self, poll_id: str) -> PollStats:
        """Rebuild the aggregate of *poll_id* from scratch and save it."""
        stats, count = await self.collect_poll_stats(poll_id)
        saved = await self._poll_stats.save_poll_stats(
            PollStats(poll_id=poll_id, stats=stats, simulation_count=count)
        )
        logger.info("Recomputed stats of poll %s from %d simulations", poll_id, count)
        return saved

    # ------------------------------------------------------------------
    # Kinds
    # ------------------------------------------------------------------

    async def _download_poll_simulations(self, job: Job) -> dict[str, Any]:
        params = job.params
        assert isinstance(params, DownloadPollSimulationsParams)

        rows: list[dict[str, Any]] = []
        result_columns: set[str] = set()
        async for simulation in self.poll_simulations(params.poll_id):
            row = _simulation_row(simulation)
            result_columns.update(k for k in row if k not in _BASE_COLUMNS)
            rows.append(row)

        buffer = io.StringIO()
        writer = csv.DictWriter(
            buffer,
            fieldnames=[*_BASE_COLUMNS, *sorted(result_columns)],
            restval="",
        )
        writer.writeheader()
        writer.writerows(rows)

        key = f"organisations/{params.organisation_id}/polls/{params.poll_id}/{job.id}.csv"
        url = await self._export_store.put(
            key, buffer.getvalue().encode("utf-8"), content_type="text/csv"
        )
        logger.info("Exported %d simulations of poll %s", len(rows), params.poll_id)
        return {"key": key, "url": url, "count": len(rows)}

    async def _recompute_poll_stats(self, job: Job) -> dict[str, Any]:
        params = job.params
        assert isinstance(params, RecomputePollStatsParams)

        stats = await self.recompute_poll_stats(params.poll_id)
        return {"count": stats.simulation_count}


def _simulation_row(simulation: Simulation) -> dict[str, Any]:
    row: dict[str, Any] = {
        "id": simulation.id,
        "user_email": simulation.user_email or "",
        "progression": simulation.progression,
        "created_at": simulation.created_at.isoformat(),
        "updated_at": simulation.updated_at.isoformat(),
    }
    row.update(flatten_tree(simulation.computed_results))
    return row
