"""Side effects of a simulation upsert.

Local handlers (emitting process):
- :class:`SendSimulationUpserted` notifies the user by email
- :class:`UpdatePollStats` merges the simulation's results into the
  running aggregate of each poll it belongs to

Relay handler (worker processes):
- :class:`SyncSimulationContact` pushes the user's latest simulation to
  the contact-sync service. Upserting a contact is idempotent, which is
  what makes it safe to run on every worker.
"""

from __future__ import annotations

import logging

from eventpipe.core.deep_merge import deep_merge_substract, deep_merge_sum
from eventpipe.core.events import BaseEvent, SimulationUpsertedAttributes
from eventpipe.core.interfaces import (
    IContactSync,
    INotificationSender,
    IPollStatsRepository,
)
from eventpipe.core.models import PollStats

logger = logging.getLogger(__name__)


def _attributes(event: BaseEvent) -> SimulationUpsertedAttributes:
    attributes = event.attributes
    if not isinstance(attributes, SimulationUpsertedAttributes):
        attributes = SimulationUpsertedAttributes.model_validate(attributes)
    return attributes


class SendSimulationUpserted:
    def __init__(self, sender: INotificationSender) -> None:
        self._sender = sender

    async def __call__(self, event: BaseEvent) -> None:
        attributes = _attributes(event)
        if not attributes.user.email:
            return

        await self._sender.send_simulation_upserted(
            email=attributes.user.email,
            origin=attributes.origin,
            simulation_id=attributes.simulation.id,
            poll_ids=attributes.poll_ids,
        )


class UpdatePollStats:
    """Incrementally maintain poll aggregates.

    The previous results of the simulation are subtracted before its new
    results are added, so re-submitting a simulation does not count twice.
    """

    def __init__(self, poll_stats: IPollStatsRepository) -> None:
        self._poll_stats = poll_stats

    async def __call__(self, event: BaseEvent) -> None:
        attributes = _attributes(event)
        previous = attributes.previous_computed_results
        current = attributes.simulation.computed_results

        for poll_id in attributes.poll_ids:
            stats = await self._poll_stats.get_poll_stats(poll_id)
            if stats is None:
                stats = PollStats(poll_id=poll_id)

            merged = stats.stats
            if previous is not None:
                merged = deep_merge_substract(merged, previous)
            merged = deep_merge_sum(merged, current)

            await self._poll_stats.save_poll_stats(
                stats.model_copy(
                    update={
                        "stats": merged,
                        "simulation_count": stats.simulation_count
                        + (1 if previous is None else 0),
                    }
                )
            )
            logger.debug(
                "Poll %s stats updated from simulation %s",
                poll_id,
                attributes.simulation.id,
            )


class SyncSimulationContact:
    def __init__(self, contacts: IContactSync) -> None:
        self._contacts = contacts

    async def __call__(self, event: BaseEvent) -> None:
        attributes = _attributes(event)
        if not attributes.user.email:
            return

        await self._contacts.upsert_contact(
            email=attributes.user.email,
            attributes={
                "USER_ID": attributes.user.id,
                "LAST_SIMULATION_ID": attributes.simulation.id,
                "LAST_SIMULATION_PROGRESSION": attributes.simulation.progression,
                "LAST_SIMULATION_DATE": event.timestamp.isoformat(),
            },
        )
