"""HTTP client services use to talk to the bus."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from blog_choreography.core.errors import PublishError
from blog_choreography.events.schema import Event
from blog_choreography.observability.logger import TRACE_HEADER, current_trace_id

logger = logging.getLogger(__name__)


class BusClient:
    """Publishes events to and reads history from the bus over HTTP.

    The aiohttp session is created lazily and shared across calls; call
    :meth:`close` on shutdown.
    """

    def __init__(self, base_url: str, timeout_seconds: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    @property
    def events_url(self) -> str:
        return f"{self._base_url}/events"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def publish(self, event: Event) -> int:
        """POST *event* to the bus and return its sequence number.

        Raises:
            PublishError: the bus was unreachable or did not accept the event.
        """
        session = await self._get_session()
        trace_id = current_trace_id()
        headers = {TRACE_HEADER: trace_id} if trace_id else None
        try:
            async with session.post(
                self.events_url, json=event.to_wire(), headers=headers,
            ) as resp:
                body: Any = await resp.json(content_type=None)
                if resp.status >= 300:
                    raise PublishError(
                        f"Bus rejected {event.type}: HTTP {resp.status} {body}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise PublishError(f"Could not publish {event.type}: {exc!r}") from exc

        sequence = body.get("sequence", 0) if isinstance(body, dict) else 0
        logger.info("Published %s seq=%s", event.type, sequence)
        return sequence

    async def fetch_history(self, after_sequence: int = 0) -> Any:
        """GET the bus history as decoded JSON.

        Errors propagate unchanged (``aiohttp.ClientError``,
        ``asyncio.TimeoutError``, ``ValueError`` for bad JSON); the replay
        client decides what they mean.
        """
        session = await self._get_session()
        params = {"after": str(after_sequence)} if after_sequence else None
        async with session.get(self.events_url, params=params) as resp:
            resp.raise_for_status()
            return await resp.json(content_type=None)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
