"""Event bus and cross-process relay.

The :class:`EventBus` dispatches within one process; the relay publisher
and subscriber carry allow-listed events between processes over a
broadcast channel.
"""

from eventpipe.bus.bus import create_channel
from eventpipe.bus.event_bus import EmitHandle, EventBus, HandlerOutcome
from eventpipe.bus.relay import RelayPublisher, RelaySubscriber

__all__ = [
    "EmitHandle",
    "EventBus",
    "HandlerOutcome",
    "RelayPublisher",
    "RelaySubscriber",
    "create_channel",
]
