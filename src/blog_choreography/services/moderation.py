"""Moderation service.

Endpoints:
  POST /events  on ``commentCreated``, decide and publish ``commentModerated``
  GET  /health

Stateless: nothing to replay.  A failed publish is logged and dropped; the
comment stays ``pending`` everywhere until it is moderated again.
"""

from __future__ import annotations

import logging

from aiohttp import web

from blog_choreography.bus.client import BusClient
from blog_choreography.core.enums import EventKind
from blog_choreography.core.errors import (
    EventValidationError,
    MalformedPayloadError,
    PublishError,
)
from blog_choreography.events.schema import CommentCreated, decode, parse_payload
from blog_choreography.moderation import ModerationPolicy
from blog_choreography.observability.metrics import MODERATION_DECISIONS

from .common import create_base_app, read_json

logger = logging.getLogger(__name__)


def create_moderation_app(
    policy: ModerationPolicy,
    bus_client: BusClient,
) -> web.Application:
    app = create_base_app()
    app["policy"] = policy
    app["bus_client"] = bus_client

    app.router.add_post("/events", handle_event)
    app.router.add_get("/health", handle_health)
    app.on_cleanup.append(_close_client)
    return app


async def _close_client(app: web.Application) -> None:
    await app["bus_client"].close()


async def handle_event(request: web.Request) -> web.Response:
    raw = await read_json(request)
    try:
        event = decode(raw)
    except EventValidationError as exc:
        return web.json_response(
            {"status": "Validation Error", "errors": exc.errors}, status=400,
        )

    if event.kind is not EventKind.COMMENT_CREATED:
        return web.json_response({"outcome": "ignored"}, status=201)

    try:
        comment = parse_payload(event)
    except MalformedPayloadError as exc:
        logger.warning("Cannot moderate malformed comment: %s", exc)
        return web.json_response({"outcome": "skipped", "error": str(exc)}, status=201)
    if not isinstance(comment, CommentCreated):
        return web.json_response({"outcome": "ignored"}, status=201)

    policy: ModerationPolicy = request.app["policy"]
    moderated = policy.moderate(comment)
    status = moderated.data["status"]
    MODERATION_DECISIONS.labels(status=status).inc()
    logger.info("Comment %s on post %s: %s", comment.id, comment.post_id, status)

    client: BusClient = request.app["bus_client"]
    try:
        await client.publish(moderated)
    except PublishError:
        logger.exception("Could not publish moderation of comment %s", comment.id)
    return web.json_response({"outcome": "applied", "status": status}, status=201)


async def handle_health(request: web.Request) -> web.Response:
    policy: ModerationPolicy = request.app["policy"]
    return web.json_response({
        "status": "ok",
        "role": "moderation",
        "disallowed_tokens": len(policy.disallowed_tokens),
    })
