"""Shared plumbing for services that own a projection.

A :class:`ProjectionService` holds the local state and its reducer.  Every
event, replayed or live, goes through :meth:`ProjectionService.handle`; the
handler is synchronous and runs on the event loop, so events are applied one
at a time and never interleave.

:func:`attach_projection` wires a service into an aiohttp application:
``POST /events`` receiver, ``GET /health`` and a startup hook that runs
replay.  aiohttp finishes ``on_startup`` before it binds the listening
socket, so a service never sees live traffic before its replay is done, and
a :class:`ReplayError` raised there stops the process from coming up.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from aiohttp import web

from blog_choreography.bus.client import BusClient
from blog_choreography.core.enums import ServiceRole
from blog_choreography.core.errors import EventValidationError
from blog_choreography.events.schema import Event, decode
from blog_choreography.projection.reducer import ApplyResult, ProjectionReducer
from blog_choreography.projection.replay import ReplayClient
from blog_choreography.projection.store import ProjectionState

from .common import json_error, read_json

logger = logging.getLogger(__name__)

# Called after an event was folded; lets a service react (e.g. emit an event).
EventReaction = Callable[[web.Application, Event, ApplyResult], Awaitable[None]]


class ProjectionService:
    """Local state of one service plus the reducer that maintains it."""

    def __init__(self, role: ServiceRole, state: ProjectionState | None = None) -> None:
        self.role = role
        self.reducer = ProjectionReducer(name=role.value)
        self.state = state if state is not None else ProjectionState()
        self.ready = False
        self.last_replayed_sequence = 0

    async def bootstrap(self, replay: ReplayClient) -> None:
        """Replace the local state with the replayed history."""
        self.state = await replay.bootstrap()
        self.last_replayed_sequence = replay.last_sequence
        self.ready = True

    def handle(self, event: Event) -> ApplyResult:
        return self.reducer.apply(self.state, event)


def attach_projection(
    app: web.Application,
    service: ProjectionService,
    bus_client: BusClient | None = None,
    replay: ReplayClient | None = None,
    reaction: EventReaction | None = None,
) -> None:
    """Register the event receiver, health check and lifecycle hooks."""
    app["service"] = service
    app["bus_client"] = bus_client
    app["replay"] = replay
    app["reaction"] = reaction

    app.router.add_post("/events", handle_event)
    app.router.add_get("/health", handle_health)

    app.on_startup.append(_run_replay)
    app.on_cleanup.append(_close_client)


async def _run_replay(app: web.Application) -> None:
    service: ProjectionService = app["service"]
    replay: ReplayClient | None = app["replay"]
    if replay is None:
        service.ready = True
        return
    # ReplayError propagates: aiohttp aborts startup.
    await service.bootstrap(replay)


async def _close_client(app: web.Application) -> None:
    client: BusClient | None = app["bus_client"]
    if client is not None:
        await client.close()


async def handle_event(request: web.Request) -> web.Response:
    """POST /events: fold one event from the bus.

    Skipped events are answered with 201 as well: the bus delivered them
    correctly; this service just had nothing to attach them to.
    """
    service: ProjectionService = request.app["service"]
    raw = await read_json(request)
    try:
        event = decode(raw)
    except EventValidationError as exc:
        return web.json_response(
            {"status": "Validation Error", "errors": exc.errors}, status=400,
        )

    result = service.handle(event)

    reaction: EventReaction | None = request.app["reaction"]
    if reaction is not None:
        await reaction(request.app, event, result)

    body = {"outcome": result.outcome.value}
    if result.error is not None:
        body["error"] = str(result.error)
    return web.json_response(body, status=201)


async def handle_health(request: web.Request) -> web.Response:
    service: ProjectionService = request.app["service"]
    if not service.ready:
        return json_error(503, "replay not finished")
    return web.json_response({
        "status": "ok",
        "role": service.role.value,
        "posts": len(service.state.posts),
        "comments": len(service.state.comments),
        "replayed_through": service.last_replayed_sequence,
        "results": service.reducer.counts,
    })
