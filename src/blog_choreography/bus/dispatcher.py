"""Best-effort broadcast of appended events to subscribers.

Every event is offered once to every subscriber.  Sends run concurrently
(bounded by ``max_concurrency``) and each one is isolated: a subscriber that
is down, slow or answering 5xx only affects its own delivery.  Nothing is
retried and nothing is acknowledged.  Failures end up in the log, in the
Prometheus counters and in a bounded in-memory failure journal that exists
for inspection only.

Usage::

    dispatcher = BroadcastDispatcher()
    dispatcher.add_webhook("query", "http://localhost:4002")
    dispatcher.add_callback("audit", audit_handler)

    report = await dispatcher.dispatch(entry)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable

import aiohttp

from blog_choreography.bus.log import SequencedEvent
from blog_choreography.core.config import SubscriberConfig
from blog_choreography.core.enums import DispatchOutcome
from blog_choreography.core.ids import utc_now
from blog_choreography.observability.metrics import record_dispatch

logger = logging.getLogger(__name__)

EventCallback = Callable[[SequencedEvent], Awaitable[None]]


# ------------------------------------------------------------------
# Subscriber definitions
# ------------------------------------------------------------------

@dataclass
class WebhookSubscriber:
    """Service reachable over HTTP; events are POSTed to ``<url>/events``."""

    name: str
    url: str
    timeout_seconds: float = 5.0

    # Stats
    sent_count: int = field(init=False, default=0)
    error_count: int = field(init=False, default=0)

    @property
    def events_url(self) -> str:
        return self.url.rstrip("/") + "/events"


@dataclass
class CallbackSubscriber:
    """In-process async callback, for embedded deployments and tests."""

    name: str
    callback: EventCallback
    timeout_seconds: float | None = 5.0

    # Stats
    sent_count: int = field(init=False, default=0)
    error_count: int = field(init=False, default=0)


Subscriber = WebhookSubscriber | CallbackSubscriber


@dataclass(frozen=True)
class DispatchFailure:
    """Record of one failed delivery.  Never re-sent."""

    subscriber: str
    sequence: int
    event_type: str
    outcome: DispatchOutcome
    error: str
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class DispatchReport:
    """Outcome of broadcasting one event."""

    sequence: int
    delivered: tuple[str, ...]
    failures: tuple[DispatchFailure, ...]

    @property
    def all_delivered(self) -> bool:
        return not self.failures


# ------------------------------------------------------------------
# Dispatcher
# ------------------------------------------------------------------

class BroadcastDispatcher:
    """Fans each event out to a fixed set of subscribers."""

    def __init__(
        self,
        max_concurrency: int = 16,
        failure_journal_size: int = 1000,
    ) -> None:
        self._subscribers: list[Subscriber] = []
        self._semaphore = asyncio.Semaphore(max(max_concurrency, 1))
        self._failures: deque[DispatchFailure] = deque(maxlen=failure_journal_size)
        self._session: aiohttp.ClientSession | None = None
        self._total_delivered: int = 0
        self._total_failed: int = 0

    @classmethod
    def from_config(
        cls,
        subscribers: list[SubscriberConfig],
        max_concurrency: int = 16,
        failure_journal_size: int = 1000,
    ) -> BroadcastDispatcher:
        dispatcher = cls(
            max_concurrency=max_concurrency,
            failure_journal_size=failure_journal_size,
        )
        for sub in subscribers:
            dispatcher.add_webhook(sub.name, sub.url, timeout_seconds=sub.timeout_seconds)
        return dispatcher

    # ---- Subscriber registration ----

    def add_webhook(self, name: str, url: str, timeout_seconds: float = 5.0) -> None:
        """Register an HTTP subscriber."""
        self._subscribers.append(
            WebhookSubscriber(name=name, url=url, timeout_seconds=timeout_seconds)
        )
        logger.info("Registered webhook subscriber: name=%s url=%s", name, url)

    def add_callback(
        self,
        name: str,
        callback: EventCallback,
        timeout_seconds: float | None = 5.0,
    ) -> None:
        """Register an in-process subscriber.  ``None`` disables the timeout."""
        self._subscribers.append(
            CallbackSubscriber(name=name, callback=callback, timeout_seconds=timeout_seconds)
        )
        logger.info("Registered callback subscriber: name=%s", name)

    @property
    def subscribers(self) -> list[Subscriber]:
        return list(self._subscribers)

    # ---- Dispatch ----

    async def dispatch(self, entry: SequencedEvent) -> DispatchReport:
        """Offer *entry* once to every subscriber.  Never raises."""
        subscribers = list(self._subscribers)
        if not subscribers:
            return DispatchReport(sequence=entry.sequence, delivered=(), failures=())

        results = await asyncio.gather(
            *(self._deliver(sub, entry) for sub in subscribers),
            return_exceptions=True,
        )

        delivered: list[str] = []
        failures: list[DispatchFailure] = []
        for sub, result in zip(subscribers, results):
            if result is None:
                delivered.append(sub.name)
                continue
            if isinstance(result, BaseException):
                # _deliver handles its own errors; this is a bug guard.
                logger.error(
                    "Unexpected dispatch error: subscriber=%s seq=%d",
                    sub.name, entry.sequence, exc_info=result,
                )
                result = DispatchFailure(
                    subscriber=sub.name,
                    sequence=entry.sequence,
                    event_type=entry.event.type,
                    outcome=DispatchOutcome.FAILED,
                    error=repr(result),
                )
            failures.append(result)

        self._total_delivered += len(delivered)
        self._total_failed += len(failures)
        self._failures.extend(failures)
        return DispatchReport(
            sequence=entry.sequence,
            delivered=tuple(delivered),
            failures=tuple(failures),
        )

    async def _deliver(
        self, sub: Subscriber, entry: SequencedEvent,
    ) -> DispatchFailure | None:
        async with self._semaphore:
            start = time.monotonic()
            if isinstance(sub, WebhookSubscriber):
                outcome, error = await self._send_webhook(sub, entry)
            else:
                outcome, error = await self._send_callback(sub, entry)
            record_dispatch(sub.name, outcome.value, time.monotonic() - start)

        if outcome is DispatchOutcome.DELIVERED:
            sub.sent_count += 1
            return None
        sub.error_count += 1
        return DispatchFailure(
            subscriber=sub.name,
            sequence=entry.sequence,
            event_type=entry.event.type,
            outcome=outcome,
            error=error,
        )

    # ---- Subscriber senders ----

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json"},
            )
        return self._session

    async def _send_webhook(
        self, sub: WebhookSubscriber, entry: SequencedEvent,
    ) -> tuple[DispatchOutcome, str]:
        """POST the event JSON to the subscriber's ``/events`` endpoint."""
        try:
            session = await self._get_session()
            timeout = aiohttp.ClientTimeout(total=sub.timeout_seconds)
            async with session.post(
                sub.events_url, json=entry.to_wire(), timeout=timeout,
            ) as resp:
                if resp.status < 300:
                    logger.debug(
                        "Delivered seq=%d to %s status=%d",
                        entry.sequence, sub.name, resp.status,
                    )
                    return DispatchOutcome.DELIVERED, ""
                body = (await resp.text())[:200]
                logger.warning(
                    "Subscriber rejected event: subscriber=%s seq=%d status=%d body=%s",
                    sub.name, entry.sequence, resp.status, body,
                )
                return DispatchOutcome.REJECTED, f"HTTP {resp.status}: {body}"
        except asyncio.TimeoutError:
            logger.warning(
                "Subscriber timed out: subscriber=%s seq=%d timeout=%.1fs",
                sub.name, entry.sequence, sub.timeout_seconds,
            )
            return DispatchOutcome.FAILED, f"timeout after {sub.timeout_seconds}s"
        except aiohttp.ClientError as exc:
            logger.warning(
                "Subscriber unreachable: subscriber=%s seq=%d error=%s",
                sub.name, entry.sequence, exc,
            )
            return DispatchOutcome.FAILED, repr(exc)

    async def _send_callback(
        self, sub: CallbackSubscriber, entry: SequencedEvent,
    ) -> tuple[DispatchOutcome, str]:
        """Invoke an in-process callback."""
        try:
            if sub.timeout_seconds is None:
                await sub.callback(entry)
            else:
                await asyncio.wait_for(sub.callback(entry), timeout=sub.timeout_seconds)
            return DispatchOutcome.DELIVERED, ""
        except asyncio.TimeoutError:
            logger.warning(
                "Callback timed out: subscriber=%s seq=%d", sub.name, entry.sequence,
            )
            return DispatchOutcome.FAILED, f"timeout after {sub.timeout_seconds}s"
        except Exception as exc:
            logger.exception(
                "Callback error: subscriber=%s seq=%d", sub.name, entry.sequence,
            )
            return DispatchOutcome.FAILED, repr(exc)

    # ---- Lifecycle ----

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ---- Introspection ----

    @property
    def failures(self) -> list[DispatchFailure]:
        """Recent delivery failures, oldest first (read-only snapshot)."""
        return list(self._failures)

    def get_error_counts(self) -> dict[str, int]:
        """Return ``{subscriber_name: error_count}``."""
        return {sub.name: sub.error_count for sub in self._subscribers}

    @property
    def stats(self) -> dict[str, int]:
        return {
            "subscribers": len(self._subscribers),
            "total_delivered": self._total_delivered,
            "total_failed": self._total_failed,
        }
