"""Logging stand-ins for the outbound notification collaborators.

Used in single-process mode and wherever no provider client is wired.
With ``record=True`` they also keep what they were asked to send, for
tests; by default nothing is retained.
Real senders implement :class:`~eventpipe.core.interfaces.INotificationSender`
and :class:`~eventpipe.core.interfaces.IContactSync`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

logger = logging.getLogger(__name__)


class LoggingNotificationSender:
    def __init__(self, record: bool = False) -> None:
        self._record = record
        self.sent: list[dict[str, Any]] = []

    async def send_simulation_upserted(
        self,
        *,
        email: str,
        origin: str,
        simulation_id: str,
        poll_ids: Sequence[str] = (),
    ) -> None:
        if self._record:
            self.sent.append(
                {
                    "email": email,
                    "origin": origin,
                    "simulation_id": simulation_id,
                    "poll_ids": list(poll_ids),
                }
            )
        logger.info(
            "Simulation %s upserted notification for %s (origin=%s)",
            simulation_id,
            email,
            origin,
        )


class LoggingContactSync:
    def __init__(self, record: bool = False) -> None:
        self._record = record
        self.contacts: dict[str, dict[str, Any]] = {}

    async def upsert_contact(self, *, email: str, attributes: dict[str, Any]) -> None:
        if self._record:
            self.contacts.setdefault(email, {}).update(attributes)
        logger.info("Contact %s upserted (%d attributes)", email, len(attributes))
