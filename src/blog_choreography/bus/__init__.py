"""Event log, broadcast dispatcher and the bus that combines them."""

from blog_choreography.bus.dispatcher import BroadcastDispatcher, DispatchReport
from blog_choreography.bus.log import EventLog, SequencedEvent
from blog_choreography.bus.service import EventBus

__all__ = [
    "BroadcastDispatcher",
    "DispatchReport",
    "EventBus",
    "EventLog",
    "SequencedEvent",
]
