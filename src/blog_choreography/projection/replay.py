"""Startup replay: rebuild a projection from the full event history.

A projection-owning service runs :meth:`ReplayClient.bootstrap` once, before
it starts accepting traffic.  Either the whole history is fetched and folded,
or :class:`ReplayError` is raised and the service must not come up.  Starting
from empty or partial state would silently disagree with every other service.

History sources
---------------
*  :class:`HttpHistorySource`: ``GET <bus>/events`` through :class:`BusClient`.
*  :class:`LogHistorySource`: an in-process :class:`EventLog`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import aiohttp

from blog_choreography.bus.client import BusClient
from blog_choreography.bus.log import EventLog, SequencedEvent
from blog_choreography.core.enums import ApplyOutcome
from blog_choreography.core.errors import EventValidationError, ReplayError
from blog_choreography.events.schema import decode
from blog_choreography.observability.metrics import REPLAYED_EVENTS
from blog_choreography.projection.reducer import ProjectionReducer
from blog_choreography.projection.store import ProjectionState

logger = logging.getLogger(__name__)


class HistorySource(Protocol):
    async def fetch(self) -> list[SequencedEvent]:
        """Return the full ordered history.  Raise ``ReplayError`` on failure."""
        ...


class LogHistorySource:
    """Reads history straight from an in-process event log."""

    def __init__(self, log: EventLog) -> None:
        self._log = log

    async def fetch(self) -> list[SequencedEvent]:
        return list(self._log.list())


class HttpHistorySource:
    """Reads history from the bus's ``GET /events`` endpoint."""

    def __init__(self, client: BusClient) -> None:
        self._client = client

    async def fetch(self) -> list[SequencedEvent]:
        try:
            body = await self._client.fetch_history()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ReplayError(
                f"Could not fetch history from {self._client.events_url}: {exc!r}"
            ) from exc
        return parse_history(body)


def parse_history(body: Any) -> list[SequencedEvent]:
    """Turn a decoded ``GET /events`` body into sequenced events.

    Entries without a ``sequence`` key get their 1-based list position.

    Raises:
        ReplayError: the body is not a list or an entry is not an event.
    """
    if not isinstance(body, list):
        raise ReplayError(f"History must be a JSON list, got {type(body).__name__}")

    entries: list[SequencedEvent] = []
    for position, item in enumerate(body, start=1):
        try:
            event = decode(item)
        except EventValidationError as exc:
            raise ReplayError(f"History entry {position} is not an event: {exc}") from exc
        sequence = item.get("sequence", position)
        if not isinstance(sequence, int) or isinstance(sequence, bool):
            raise ReplayError(f"History entry {position} has a bad sequence: {sequence!r}")
        entries.append(SequencedEvent(sequence=sequence, event=event))
    return entries


def _check_order(entries: list[SequencedEvent]) -> None:
    previous = 0
    for entry in entries:
        if entry.sequence <= previous:
            raise ReplayError(
                f"History out of order: sequence {entry.sequence} after {previous}"
            )
        previous = entry.sequence


class ReplayClient:
    """Fetches the history once and folds it into a fresh state."""

    def __init__(self, source: HistorySource, reducer: ProjectionReducer) -> None:
        self._source = source
        self._reducer = reducer
        self.last_sequence: int = 0

    async def bootstrap(self) -> ProjectionState:
        """Build the initial local state.

        Raises:
            ReplayError: the history could not be fetched or is inconsistent.
        """
        entries = await self._source.fetch()
        _check_order(entries)

        state = ProjectionState()
        results = self._reducer.fold(state, (entry.event for entry in entries))

        skipped = sum(1 for r in results if r.outcome is ApplyOutcome.SKIPPED)
        REPLAYED_EVENTS.labels(service=self._reducer.name).inc(len(entries))
        self.last_sequence = entries[-1].sequence if entries else 0
        logger.info(
            "%s: replayed %d event(s) up to seq=%d (%d skipped): %r",
            self._reducer.name, len(entries), self.last_sequence, skipped, state,
        )
        return state
