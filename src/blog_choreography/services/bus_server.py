"""Bus HTTP server.

Endpoints:
  POST /events              validate, append, queue for broadcast
  GET  /events?after=<seq>  ordered history (full, or after a sequence)
  GET  /health              liveness plus log and dispatch counters
"""

from __future__ import annotations

import logging

from aiohttp import web

from blog_choreography.bus.service import EventBus
from blog_choreography.core.errors import EventValidationError

from .common import create_base_app, json_error, read_json

logger = logging.getLogger(__name__)


def create_bus_app(bus: EventBus) -> web.Application:
    """Create the aiohttp application for the bus.

    The bus's dispatch worker starts and stops with the application.
    """
    app = create_base_app()
    app["bus"] = bus

    app.router.add_post("/events", handle_post_event)
    app.router.add_get("/events", handle_get_events)
    app.router.add_get("/health", handle_health)

    app.on_startup.append(_start_bus)
    app.on_cleanup.append(_stop_bus)
    return app


async def _start_bus(app: web.Application) -> None:
    await app["bus"].start()


async def _stop_bus(app: web.Application) -> None:
    await app["bus"].stop()


async def handle_post_event(request: web.Request) -> web.Response:
    """POST /events: answers once the event is accepted, not delivered."""
    bus: EventBus = request.app["bus"]
    raw = await read_json(request)
    try:
        entry = bus.ingest(raw)
    except EventValidationError as exc:
        return web.json_response(
            {"status": "Validation Error", "errors": exc.errors}, status=400,
        )
    return web.json_response({"status": "OK", "sequence": entry.sequence}, status=201)


async def handle_get_events(request: web.Request) -> web.Response:
    """GET /events: JSON list of ``{"sequence", "type", "data"}``."""
    bus: EventBus = request.app["bus"]
    try:
        after = int(request.query.get("after", "0"))
    except ValueError:
        return json_error(400, "'after' must be an integer")
    return web.json_response([entry.to_wire() for entry in bus.history(after)])


async def handle_health(request: web.Request) -> web.Response:
    bus: EventBus = request.app["bus"]
    return web.json_response({
        "status": "ok",
        "events": len(bus.log),
        "dispatching": bus.running,
        "dispatch": bus.dispatcher.stats,
        "recent_failures": len(bus.dispatcher.failures),
    })
