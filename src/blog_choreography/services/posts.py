"""Posts service.

Endpoints:
  POST /posts   {title}  emit ``postCreated``
  GET  /posts            projected posts keyed by id
  POST /events           projection receiver
  GET  /health

The service never writes its own store on ``POST /posts``: the post shows up
locally when the bus broadcasts ``postCreated`` back.
"""

from __future__ import annotations

import logging

from aiohttp import web

from blog_choreography.bus.client import BusClient
from blog_choreography.core.errors import PublishError
from blog_choreography.core.ids import new_entity_id
from blog_choreography.events.schema import PostCreated
from blog_choreography.projection.replay import ReplayClient

from .common import create_base_app, json_error, read_json
from .projection_host import ProjectionService, attach_projection

logger = logging.getLogger(__name__)


def create_posts_app(
    service: ProjectionService,
    bus_client: BusClient,
    replay: ReplayClient | None = None,
) -> web.Application:
    app = create_base_app()
    attach_projection(app, service, bus_client=bus_client, replay=replay)
    app.router.add_get("/posts", handle_list_posts)
    app.router.add_post("/posts", handle_create_post)
    return app


async def handle_list_posts(request: web.Request) -> web.Response:
    service: ProjectionService = request.app["service"]
    return web.json_response(
        {post.id: post.to_wire() for post in service.state.posts.values()}
    )


async def handle_create_post(request: web.Request) -> web.Response:
    body = await read_json(request)
    title = body.get("title") if isinstance(body, dict) else None
    if not isinstance(title, str) or not title.strip():
        return json_error(400, "Title is required")

    payload = PostCreated(id=new_entity_id(), title=title)
    client: BusClient = request.app["bus_client"]
    try:
        await client.publish(payload.to_event())
    except PublishError as exc:
        logger.error("Post %s not published: %s", payload.id, exc)
        return json_error(502, "Event bus unavailable")
    return web.json_response(payload.to_event().data, status=201)
