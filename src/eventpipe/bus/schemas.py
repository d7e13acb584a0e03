"""Relay event registry and wire codec.

Maps relay event names to their Pydantic event models. The allow-list is
closed: a name that is not registered here is rejected at the boundary by
every subscriber. Bump ``RELAY_SCHEMA_VERSION`` whenever an entry is
added, removed or changes its attributes incompatibly, and roll workers
before publishers.

Wire format::

    {"name": "<relay event name>", "attributes": <JSON value>}
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from eventpipe.core.errors import ConfigError, RelayDecodeError, UnknownEventError
from eventpipe.core.events import (
    BaseEvent,
    JobStartedRelayEvent,
    SimulationUpsertedRelayEvent,
)

RELAY_SCHEMA_VERSION = 1

_RELAY_EVENTS: tuple[type[BaseEvent], ...] = (
    JobStartedRelayEvent,
    SimulationUpsertedRelayEvent,
)


def _build_registry(
    events: tuple[type[BaseEvent], ...],
) -> dict[str, type[BaseEvent]]:
    registry: dict[str, type[BaseEvent]] = {}
    for cls in events:
        if cls.name in registry:
            raise ConfigError(
                f"Duplicate relay event name {cls.name!r}: "
                f"{registry[cls.name].__name__} and {cls.__name__}"
            )
        registry[cls.name] = cls
    return registry


# Relay event name → event class (for deserialization)
RELAY_EVENT_TYPES: dict[str, type[BaseEvent]] = _build_registry(_RELAY_EVENTS)


def get_event_class(name: str) -> type[BaseEvent] | None:
    """Look up a relay event class by its wire name."""
    return RELAY_EVENT_TYPES.get(name)


def is_relay_event(cls: type[BaseEvent]) -> bool:
    return RELAY_EVENT_TYPES.get(cls.name) is cls


def encode_event(event: BaseEvent) -> str:
    """Serialize *event* to its wire representation."""
    return json.dumps({"name": event.name, "attributes": event.wire_attributes()})


def decode_event(
    raw: str | bytes,
    registry: dict[str, type[BaseEvent]] | None = None,
) -> BaseEvent:
    """Reconstruct an event instance from its wire representation.

    Raises:
        RelayDecodeError: Malformed JSON, wrong envelope shape, or
            attributes rejected by the event model.
        UnknownEventError: The name is not in the allow-list.
    """
    registry = RELAY_EVENT_TYPES if registry is None else registry

    try:
        envelope: Any = json.loads(raw)
    except (ValueError, TypeError, RecursionError) as exc:
        raise RelayDecodeError(f"Malformed relay message: {exc}") from exc

    if not isinstance(envelope, dict) or not isinstance(envelope.get("name"), str):
        raise RelayDecodeError(f"Relay message is not a named envelope: {raw!r}")

    name = envelope["name"]
    event_cls = registry.get(name)
    if event_cls is None:
        raise UnknownEventError(name)

    try:
        return event_cls(attributes=envelope.get("attributes"))
    except ValidationError as exc:
        raise RelayDecodeError(
            f"Invalid attributes for {name!r}: {exc.error_count()} errors"
        ) from exc
