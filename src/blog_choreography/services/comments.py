"""Comments service.

Endpoints:
  POST /posts/{id}/comments  {content}  emit ``commentCreated`` (pending)
  GET  /posts/{id}/comments             projected comments of a post
  POST /events                          projection receiver
  GET  /health

The comments service owns comment content.  When a ``commentModerated``
event lands on a comment it knows, it re-publishes the comment as
``commentUpdated`` with the moderated status.
"""

from __future__ import annotations

import logging

from aiohttp import web

from blog_choreography.bus.client import BusClient
from blog_choreography.core.enums import CommentStatus, EventKind
from blog_choreography.core.errors import PublishError
from blog_choreography.core.ids import new_entity_id
from blog_choreography.events.schema import CommentCreated, CommentUpdated, Event
from blog_choreography.projection.reducer import ApplyResult
from blog_choreography.projection.replay import ReplayClient

from .common import create_base_app, json_error, read_json
from .projection_host import ProjectionService, attach_projection

logger = logging.getLogger(__name__)


def create_comments_app(
    service: ProjectionService,
    bus_client: BusClient,
    replay: ReplayClient | None = None,
) -> web.Application:
    app = create_base_app()
    attach_projection(
        app, service, bus_client=bus_client, replay=replay, reaction=relay_moderation,
    )
    app.router.add_get("/posts/{id}/comments", handle_list_comments)
    app.router.add_post("/posts/{id}/comments", handle_create_comment)
    return app


async def handle_list_comments(request: web.Request) -> web.Response:
    service: ProjectionService = request.app["service"]
    post_id = request.match_info["id"]
    return web.json_response([c.to_wire() for c in service.state.comments_for(post_id)])


async def handle_create_comment(request: web.Request) -> web.Response:
    service: ProjectionService = request.app["service"]
    post_id = request.match_info["id"]
    body = await read_json(request)
    content = body.get("content") if isinstance(body, dict) else None
    if not isinstance(content, str) or not content.strip():
        return json_error(400, "Content is required")
    if service.state.posts.get(post_id) is None:
        return json_error(404, "Post not found", postId=post_id)

    payload = CommentCreated(
        id=new_entity_id(),
        post_id=post_id,
        content=content,
        status=CommentStatus.PENDING,
    )
    client: BusClient = request.app["bus_client"]
    try:
        await client.publish(payload.to_event())
    except PublishError as exc:
        logger.error("Comment %s not published: %s", payload.id, exc)
        return json_error(502, "Event bus unavailable")
    return web.json_response(payload.to_event().data, status=201)


async def relay_moderation(
    app: web.Application, event: Event, result: ApplyResult,
) -> None:
    """Publish ``commentUpdated`` for a comment this service just moderated."""
    if event.kind is not EventKind.COMMENT_MODERATED or not result.applied:
        return

    service: ProjectionService = app["service"]
    comment = service.state.comments.get(event.data["id"])
    if comment is None:
        return
    updated = CommentUpdated(
        id=comment.id,
        post_id=comment.post_id,
        content=comment.content,
        status=comment.status,
    ).to_event()

    client: BusClient = app["bus_client"]
    try:
        await client.publish(updated)
    except PublishError:
        logger.exception("Could not relay moderation of comment %s", comment.id)
