"""Test save_simulation persistence and the upsert announcement."""

from __future__ import annotations

from eventpipe.core.events import SimulationUpsertedEvent, UserRef
from eventpipe.core.models import Simulation
from eventpipe.simulations.service import save_simulation

USER = UserRef(id="user-1", email="jean@example.org")


class TestSaveSimulation:
    async def test_new_simulation_has_no_previous_results(self, simulation_repo, bus):
        events = []
        bus.on(SimulationUpsertedEvent, events.append)

        await save_simulation(
            Simulation(id="sim-1", poll_id="poll-1", computed_results={"bilan": 1.0}),
            user=USER,
            origin="https://nosgestesclimat.fr",
            simulations=simulation_repo,
            bus=bus,
        )

        attributes = events[0].attributes
        assert attributes.previous_computed_results is None
        assert attributes.poll_ids == ["poll-1"]
        assert attributes.simulation.computed_results == {"bilan": 1.0}
        assert await simulation_repo.get_simulation("sim-1") is not None

    async def test_update_carries_previous_results(self, simulation_repo, bus):
        events = []
        bus.on(SimulationUpsertedEvent, events.append)
        kwargs = dict(user=USER, origin="o", simulations=simulation_repo, bus=bus)

        await save_simulation(Simulation(id="sim-1", computed_results={"bilan": 1.0}), **kwargs)
        await save_simulation(Simulation(id="sim-1", computed_results={"bilan": 3.0}), **kwargs)

        assert events[1].attributes.previous_computed_results == {"bilan": 1.0}
        assert events[1].attributes.poll_ids == []

    async def test_explicit_poll_ids(self, simulation_repo, bus):
        events = []
        bus.on(SimulationUpsertedEvent, events.append)

        await save_simulation(
            Simulation(id="sim-1", poll_id="poll-1"),
            user=USER,
            origin="o",
            simulations=simulation_repo,
            bus=bus,
            poll_ids=["poll-1", "poll-2"],
        )

        assert events[0].attributes.poll_ids == ["poll-1", "poll-2"]

    async def test_returns_handler_outcomes(self, simulation_repo, bus):
        async def failing(event):
            raise RuntimeError("smtp down")

        bus.on(SimulationUpsertedEvent, failing)

        outcomes = await save_simulation(
            Simulation(id="sim-1"),
            user=USER,
            origin="o",
            simulations=simulation_repo,
            bus=bus,
        )

        assert len(outcomes) == 1
        assert not outcomes[0].ok
        # The write itself is not rolled back by a failing side effect
        assert await simulation_repo.get_simulation("sim-1") is not None
