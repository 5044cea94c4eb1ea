"""The event bus: validate, append, broadcast.

``ingest()`` returns as soon as the event is in the log.  Broadcasting runs
behind a queue drained by a single worker task, so:

*  the producer never waits on (or hears about) subscriber problems;
*  every subscriber is sent events in append order, because the worker only
   moves to the next event once the previous one has been offered to all
   subscribers (each bounded by its own timeout).

Events still queued when the bus stops are not delivered.  They remain in
the log and reach services through replay.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from blog_choreography.bus.dispatcher import BroadcastDispatcher, DispatchReport
from blog_choreography.bus.log import EventLog, SequencedEvent
from blog_choreography.core.config import Settings
from blog_choreography.core.errors import EventValidationError
from blog_choreography.events.schema import Event, validate
from blog_choreography.observability.metrics import DISPATCH_QUEUE_DEPTH, EVENTS_REJECTED

logger = logging.getLogger(__name__)


class EventBus:
    """Event log plus broadcast worker.

    Parameters
    ----------
    log
        The event log to append to.  A fresh one is created when omitted.
    dispatcher
        Broadcasts appended events.  When omitted the bus has no
        subscribers and only records history.
    """

    def __init__(
        self,
        log: EventLog | None = None,
        dispatcher: BroadcastDispatcher | None = None,
    ) -> None:
        self.log = log if log is not None else EventLog()
        self.dispatcher = dispatcher if dispatcher is not None else BroadcastDispatcher()
        self._queue: asyncio.Queue[SequencedEvent] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._last_report: DispatchReport | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> EventBus:
        dispatcher = BroadcastDispatcher.from_config(
            settings.subscriber_urls(),
            max_concurrency=settings.bus.max_concurrency,
            failure_journal_size=settings.bus.failure_journal_size,
        )
        return cls(dispatcher=dispatcher)

    # -- Lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="event-bus-dispatch")
            logger.info(
                "Event bus started with %d subscriber(s)",
                len(self.dispatcher.subscribers),
            )

    async def stop(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        pending = self._queue.qsize()
        if pending:
            logger.warning("Event bus stopped with %d undelivered event(s)", pending)
        await self.dispatcher.close()

    async def __aenter__(self) -> EventBus:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # -- Ingestion ---------------------------------------------------------

    def ingest(self, raw: Any) -> SequencedEvent:
        """Validate *raw*, append it and schedule its broadcast.

        Raises:
            EventValidationError: the event is rejected and not appended.
        """
        try:
            event = validate(raw)
        except EventValidationError as exc:
            EVENTS_REJECTED.inc()
            logger.info("Rejected event: %s", exc)
            raise
        return self.append(event)

    def append(self, event: Event) -> SequencedEvent:
        """Append an already validated *event* and schedule its broadcast."""
        sequence = self.log.append(event)
        entry = SequencedEvent(sequence=sequence, event=event)
        self._queue.put_nowait(entry)
        DISPATCH_QUEUE_DEPTH.set(self._queue.qsize())
        logger.info("Accepted event seq=%d type=%s", sequence, event.type)
        return entry

    def history(self, after_sequence: int = 0) -> tuple[SequencedEvent, ...]:
        return self.log.read(after_sequence=after_sequence)

    # -- Broadcasting ------------------------------------------------------

    async def drain(self) -> None:
        """Wait until every appended event has been offered to subscribers."""
        await self._queue.join()

    @property
    def last_report(self) -> DispatchReport | None:
        return self._last_report

    async def _run(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                report = await self.dispatcher.dispatch(entry)
                self._last_report = report
                if report.failures:
                    logger.warning(
                        "Broadcast seq=%d: %d delivered, %d failed (%s)",
                        entry.sequence,
                        len(report.delivered),
                        len(report.failures),
                        ", ".join(f.subscriber for f in report.failures),
                    )
            except Exception:
                logger.exception("Broadcast of seq=%d aborted", entry.sequence)
            finally:
                self._queue.task_done()
                DISPATCH_QUEUE_DEPTH.set(self._queue.qsize())
