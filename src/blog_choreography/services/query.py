"""Query service: read-only view of posts with their comments.

Endpoints:
  GET  /posts                ``{post_id: {id, title, comments: [...]}}``
  GET  /posts/{id}/comments  comments of one post (404 if unknown)
  POST /events               projection receiver
  GET  /health
"""

from __future__ import annotations

from aiohttp import web

from blog_choreography.bus.client import BusClient
from blog_choreography.projection.replay import ReplayClient

from .common import create_base_app, json_error
from .projection_host import ProjectionService, attach_projection


def create_query_app(
    service: ProjectionService,
    replay: ReplayClient | None = None,
    bus_client: BusClient | None = None,
) -> web.Application:
    """*bus_client* is only closed on cleanup; the query service never publishes."""
    app = create_base_app()
    attach_projection(app, service, bus_client=bus_client, replay=replay)
    app.router.add_get("/posts", handle_list_posts)
    app.router.add_get("/posts/{id}/comments", handle_list_comments)
    return app


async def handle_list_posts(request: web.Request) -> web.Response:
    service: ProjectionService = request.app["service"]
    return web.json_response(service.state.posts_with_comments())


async def handle_list_comments(request: web.Request) -> web.Response:
    service: ProjectionService = request.app["service"]
    post_id = request.match_info["id"]
    if service.state.posts.get(post_id) is None:
        return json_error(404, "Post not found", postId=post_id)
    return web.json_response([c.to_wire() for c in service.state.comments_for(post_id)])
