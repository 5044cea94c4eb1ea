"""End-to-end: bus plus all four services talking over real HTTP."""

from __future__ import annotations

import aiohttp
import pytest

from blog_choreography.bus.client import BusClient
from blog_choreography.bus.service import EventBus
from blog_choreography.core.enums import ServiceRole
from blog_choreography.moderation import ModerationPolicy
from blog_choreography.projection.replay import HttpHistorySource, ReplayClient
from blog_choreography.services.bus_server import create_bus_app
from blog_choreography.services.comments import create_comments_app
from blog_choreography.services.moderation import create_moderation_app
from blog_choreography.services.posts import create_posts_app
from blog_choreography.services.projection_host import ProjectionService
from blog_choreography.services.query import create_query_app


class _Cluster:
    def __init__(self, bus: EventBus, bus_url: str) -> None:
        self.bus = bus
        self.bus_url = bus_url
        self.urls: dict[str, str] = {}
        self.services: dict[str, ProjectionService] = {}


@pytest.fixture
async def cluster(aiohttp_server):
    bus = EventBus()
    bus_server = await aiohttp_server(create_bus_app(bus))
    c = _Cluster(bus, str(bus_server.make_url("/")))

    async def start_projection(role: ServiceRole, factory):
        service = ProjectionService(role)
        client = BusClient(c.bus_url)
        replay = ReplayClient(HttpHistorySource(client), service.reducer)
        server = await aiohttp_server(factory(service, client, replay))
        c.services[role.value] = service
        c.urls[role.value] = str(server.make_url("")).rstrip("/")

    await start_projection(ServiceRole.POSTS, create_posts_app)
    await start_projection(ServiceRole.COMMENTS, create_comments_app)
    await start_projection(
        ServiceRole.QUERY,
        lambda service, client, replay: create_query_app(service, replay=replay, bus_client=client),
    )
    moderation = await aiohttp_server(
        create_moderation_app(ModerationPolicy(), BusClient(c.bus_url))
    )
    c.urls["moderation"] = str(moderation.make_url("")).rstrip("/")

    for name, url in c.urls.items():
        bus.dispatcher.add_webhook(name, url)
    return c


@pytest.fixture
async def http():
    async with aiohttp.ClientSession() as session:
        yield session


async def _create_post(http, cluster, title: str) -> str:
    async with http.post(f"{cluster.urls['posts']}/posts", json={"title": title}) as resp:
        assert resp.status == 201
        post_id = (await resp.json())["id"]
    await cluster.bus.drain()
    return post_id


async def _create_comment(http, cluster, post_id: str, content: str) -> str:
    url = f"{cluster.urls['comments']}/posts/{post_id}/comments"
    async with http.post(url, json={"content": content}) as resp:
        assert resp.status == 201
        comment_id = (await resp.json())["id"]
    await cluster.bus.drain()
    return comment_id


class TestChoreography:
    @pytest.mark.asyncio
    async def test_comment_is_moderated_everywhere(self, cluster, http):
        post_id = await _create_post(http, cluster, "Hello")
        good = await _create_comment(http, cluster, post_id, "nice post")
        bad = await _create_comment(http, cluster, post_id, "ORANGE!")

        async with http.get(f"{cluster.urls['query']}/posts") as resp:
            posts = await resp.json()
        statuses = {c["id"]: c["status"] for c in posts[post_id]["comments"]}
        assert statuses == {good: "approved", bad: "rejected"}

        async with http.get(f"{cluster.urls['comments']}/posts/{post_id}/comments") as resp:
            comments = await resp.json()
        assert {c["id"]: c["status"] for c in comments} == statuses

        kinds = [e.event.type for e in cluster.bus.history()]
        assert kinds.count("commentModerated") == 2
        assert kinds.count("commentUpdated") == 2

    @pytest.mark.asyncio
    async def test_posts_service_sees_its_own_post(self, cluster, http):
        post_id = await _create_post(http, cluster, "Mine")
        async with http.get(f"{cluster.urls['posts']}/posts") as resp:
            assert await resp.json() == {post_id: {"id": post_id, "title": "Mine"}}

    @pytest.mark.asyncio
    async def test_dead_subscriber_does_not_block_others(self, cluster, http):
        cluster.bus.dispatcher.add_webhook("gone", "http://127.0.0.1:1", timeout_seconds=1.0)
        post_id = await _create_post(http, cluster, "Still works")

        assert cluster.services["query"].state.posts.get(post_id) is not None
        assert any(f.subscriber == "gone" for f in cluster.bus.dispatcher.failures)

    @pytest.mark.asyncio
    async def test_late_service_catches_up_by_replay(self, cluster, http, aiohttp_server):
        post_id = await _create_post(http, cluster, "Before")
        await _create_comment(http, cluster, post_id, "orange juice")

        late = ProjectionService(ServiceRole.QUERY)
        client = BusClient(cluster.bus_url)
        replay = ReplayClient(HttpHistorySource(client), late.reducer)
        await aiohttp_server(create_query_app(late, replay=replay, bus_client=client))

        assert late.ready
        assert late.state == cluster.services["query"].state
