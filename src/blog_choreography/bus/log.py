"""Append-only event log for replay and audit.

Design invariants
-----------------
1.  ``append()`` assigns the next **sequence number** (1, 2, 3, ...).  The
    sequence number *is* the event's identity in the log.
2.  ``list()`` / ``read()`` return events in **append order**; an event is
    never reordered or removed after acceptance, so every read is a prefix
    (or a suffix of a prefix) of every later read.
3.  Appends are serialized under a lock; readers get an immutable snapshot
    and never observe a half-finished append.
4.  Nothing is persisted.  The log lives as long as the bus process.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from blog_choreography.events.schema import Event
from blog_choreography.observability.metrics import record_append

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SequencedEvent:
    """An event together with its position in the log."""

    sequence: int
    event: Event

    def to_wire(self) -> dict[str, Any]:
        return {"sequence": self.sequence, **self.event.to_wire()}


class EventLog:
    """List-backed, append-only, in-memory event log."""

    def __init__(self) -> None:
        self._entries: list[SequencedEvent] = []
        self._lock = threading.Lock()

    def append(self, event: Event) -> int:
        """Append a validated *event* and return its sequence number."""
        with self._lock:
            sequence = len(self._entries) + 1
            self._entries.append(SequencedEvent(sequence=sequence, event=event))
        record_append(event.type, sequence)
        logger.debug("Appended event seq=%d type=%s", sequence, event.type)
        return sequence

    def list(self) -> tuple[SequencedEvent, ...]:
        """The full ordered history."""
        return self.read()

    def read(self, after_sequence: int = 0) -> tuple[SequencedEvent, ...]:
        """Events with a sequence number greater than *after_sequence*."""
        with self._lock:
            return tuple(self._entries[max(after_sequence, 0):])

    def __len__(self) -> int:
        return len(self._entries)
