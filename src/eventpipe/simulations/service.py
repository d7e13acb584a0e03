"""Simulation writes on the request side.

Saving a simulation persists it and emits :class:`SimulationUpsertedEvent`
carrying the results it replaced, so handlers can maintain aggregates
incrementally.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from eventpipe.bus.event_bus import EventBus, HandlerOutcome
from eventpipe.core.events import (
    SimulationRef,
    SimulationUpsertedAttributes,
    SimulationUpsertedEvent,
    UserRef,
)
from eventpipe.core.interfaces import ISimulationRepository
from eventpipe.core.models import Simulation

logger = logging.getLogger(__name__)


async def save_simulation(
    simulation: Simulation,
    *,
    user: UserRef,
    origin: str,
    simulations: ISimulationRepository,
    bus: EventBus,
    poll_ids: Sequence[str] | None = None,
) -> list[HandlerOutcome]:
    """Persist *simulation* and wait for its upsert side effects.

    ``poll_ids`` defaults to the simulation's own poll, if any.
    """
    previous = await simulations.upsert_simulation(simulation)
    if poll_ids is None:
        poll_ids = [simulation.poll_id] if simulation.poll_id else []

    event = SimulationUpsertedEvent(
        attributes=SimulationUpsertedAttributes(
            origin=origin,
            user=user,
            simulation=SimulationRef(
                id=simulation.id,
                progression=simulation.progression,
                computed_results=simulation.computed_results,
            ),
            previous_computed_results=(
                previous.computed_results if previous is not None else None
            ),
            poll_ids=list(poll_ids),
        )
    )
    logger.info(
        "Simulation %s %s by user %s",
        simulation.id,
        "updated" if previous is not None else "created",
        user.id,
    )
    return await bus.emit(event)
