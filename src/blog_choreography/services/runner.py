"""Application wiring and process entry points for every service role."""

from __future__ import annotations

import logging

from aiohttp import web

from blog_choreography.bus.client import BusClient
from blog_choreography.bus.service import EventBus
from blog_choreography.core.config import Settings
from blog_choreography.core.enums import ServiceRole
from blog_choreography.moderation import ModerationPolicy
from blog_choreography.observability.logger import setup_logging
from blog_choreography.observability.metrics import start_metrics_server
from blog_choreography.projection.reducer import ProjectionReducer
from blog_choreography.projection.replay import HttpHistorySource, ReplayClient
from blog_choreography.projection.store import ProjectionState

from .bus_server import create_bus_app
from .comments import create_comments_app
from .moderation import create_moderation_app
from .posts import create_posts_app
from .projection_host import ProjectionService
from .query import create_query_app

logger = logging.getLogger(__name__)


def build_app(role: ServiceRole, settings: Settings) -> web.Application:
    """Create the aiohttp application for *role*."""
    if role is ServiceRole.BUS:
        return create_bus_app(EventBus.from_settings(settings))

    client = BusClient(settings.bus_url, timeout_seconds=settings.replay.timeout_seconds)

    if role is ServiceRole.MODERATION:
        policy = ModerationPolicy(settings.moderation_policy.disallowed_tokens)
        return create_moderation_app(policy, client)

    service = ProjectionService(role)
    replay = ReplayClient(HttpHistorySource(client), service.reducer)
    if role is ServiceRole.POSTS:
        return create_posts_app(service, client, replay=replay)
    if role is ServiceRole.COMMENTS:
        return create_comments_app(service, client, replay=replay)
    return create_query_app(service, replay=replay, bus_client=client)


def run_service(role: ServiceRole, settings: Settings) -> None:
    """Run *role* until interrupted.  Replay failures abort startup."""
    obs = settings.observability
    setup_logging(level=obs.log_level, format=obs.log_format, role=role.value)
    if obs.metrics_port:
        start_metrics_server(obs.metrics_port, role=role.value)

    server = settings.server_for(role)
    logger.info("Starting %s service on %s:%d", role.value, server.host, server.port)
    web.run_app(
        build_app(role, settings),
        host=server.host,
        port=server.port,
        print=None,
    )


async def replay_once(settings: Settings) -> tuple[ProjectionState, ReplayClient]:
    """Fetch and fold the bus history without starting a server."""
    client = BusClient(settings.bus_url, timeout_seconds=settings.replay.timeout_seconds)
    replay = ReplayClient(HttpHistorySource(client), ProjectionReducer(name="cli"))
    try:
        state = await replay.bootstrap()
    finally:
        await client.close()
    return state, replay
