"""Tests for the posts, comments, query and moderation services."""

from __future__ import annotations

import pytest

from blog_choreography.bus.client import BusClient
from blog_choreography.bus.log import EventLog
from blog_choreography.bus.service import EventBus
from blog_choreography.core.enums import CommentStatus, ServiceRole
from blog_choreography.core.errors import ReplayError
from blog_choreography.events.schema import Event
from blog_choreography.moderation import ModerationPolicy
from blog_choreography.projection.replay import LogHistorySource, ReplayClient
from blog_choreography.services.bus_server import create_bus_app
from blog_choreography.services.comments import create_comments_app
from blog_choreography.services.moderation import create_moderation_app
from blog_choreography.services.posts import create_posts_app
from blog_choreography.services.projection_host import ProjectionService
from blog_choreography.services.query import create_query_app


@pytest.fixture
async def bus_backend(aiohttp_server):
    """A running bus with no subscribers, plus a client pointed at it."""
    bus = EventBus()
    server = await aiohttp_server(create_bus_app(bus))
    client = BusClient(str(server.make_url("/")))
    yield bus, client
    await client.close()


def _service(role: ServiceRole, events=()) -> ProjectionService:
    service = ProjectionService(role)
    service.reducer.fold(service.state, events)
    return service


_P1 = Event(type="postCreated", data={"id": "P1", "title": "Hi"})


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------

class TestPostsService:
    @pytest.mark.asyncio
    async def test_create_post_publishes_event(self, aiohttp_client, bus_backend):
        bus, bus_client = bus_backend
        service = _service(ServiceRole.POSTS)
        client = await aiohttp_client(create_posts_app(service, bus_client))

        resp = await client.post("/posts", json={"title": "Hello"})
        assert resp.status == 201
        body = await resp.json()
        assert body["title"] == "Hello"

        [entry] = bus.history()
        assert entry.event.type == "postCreated"
        assert entry.event.data == {"id": body["id"], "title": "Hello"}
        # Local state only changes once the event comes back from the bus.
        assert len(service.state.posts) == 0

    @pytest.mark.asyncio
    async def test_title_is_required(self, aiohttp_client, bus_backend):
        bus, bus_client = bus_backend
        client = await aiohttp_client(create_posts_app(_service(ServiceRole.POSTS), bus_client))

        resp = await client.post("/posts", json={"title": "  "})
        assert resp.status == 400
        assert len(bus.log) == 0

    @pytest.mark.asyncio
    async def test_bus_down_is_bad_gateway(self, aiohttp_client):
        bus_client = BusClient("http://127.0.0.1:1", timeout_seconds=1.0)
        client = await aiohttp_client(create_posts_app(_service(ServiceRole.POSTS), bus_client))
        resp = await client.post("/posts", json={"title": "Hello"})
        assert resp.status == 502

    @pytest.mark.asyncio
    async def test_list_posts_after_receiving_event(self, aiohttp_client, bus_backend):
        _, bus_client = bus_backend
        client = await aiohttp_client(create_posts_app(_service(ServiceRole.POSTS), bus_client))

        resp = await client.post("/events", json={"sequence": 1, **_P1.to_wire()})
        assert resp.status == 201
        assert await resp.json() == {"outcome": "applied"}

        resp = await client.get("/posts")
        assert await resp.json() == {"P1": {"id": "P1", "title": "Hi"}}


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

class TestCommentsService:
    @pytest.mark.asyncio
    async def test_create_comment_is_pending(self, aiohttp_client, bus_backend):
        bus, bus_client = bus_backend
        service = _service(ServiceRole.COMMENTS, [_P1])
        client = await aiohttp_client(create_comments_app(service, bus_client))

        resp = await client.post("/posts/P1/comments", json={"content": "nice"})
        assert resp.status == 201
        body = await resp.json()
        assert body["postId"] == "P1"
        assert body["status"] == "pending"
        assert bus.history()[0].event.type == "commentCreated"

    @pytest.mark.asyncio
    async def test_comment_on_unknown_post(self, aiohttp_client, bus_backend):
        bus, bus_client = bus_backend
        client = await aiohttp_client(
            create_comments_app(_service(ServiceRole.COMMENTS), bus_client)
        )
        resp = await client.post("/posts/NOPE/comments", json={"content": "x"})
        assert resp.status == 404
        assert len(bus.log) == 0

    @pytest.mark.asyncio
    async def test_content_is_required(self, aiohttp_client, bus_backend):
        _, bus_client = bus_backend
        client = await aiohttp_client(
            create_comments_app(_service(ServiceRole.COMMENTS, [_P1]), bus_client)
        )
        resp = await client.post("/posts/P1/comments", json={})
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_moderation_is_relayed_as_update(self, aiohttp_client, bus_backend):
        bus, bus_client = bus_backend
        service = _service(ServiceRole.COMMENTS, [
            _P1,
            Event(type="commentCreated", data={
                "id": "C1", "postId": "P1", "content": "orange", "status": "pending",
            }),
        ])
        client = await aiohttp_client(create_comments_app(service, bus_client))

        resp = await client.post("/events", json={
            "type": "commentModerated",
            "data": {"id": "C1", "postId": "P1", "status": "rejected", "content": "orange"},
        })
        assert resp.status == 201

        assert service.state.comments.get("C1").status is CommentStatus.REJECTED
        [entry] = bus.history()
        assert entry.event.type == "commentUpdated"
        assert entry.event.data == {
            "id": "C1", "postId": "P1", "content": "orange", "status": "rejected",
        }

    @pytest.mark.asyncio
    async def test_skipped_moderation_is_not_relayed(self, aiohttp_client, bus_backend):
        bus, bus_client = bus_backend
        client = await aiohttp_client(
            create_comments_app(_service(ServiceRole.COMMENTS, [_P1]), bus_client)
        )
        resp = await client.post("/events", json={
            "type": "commentModerated",
            "data": {"id": "C9", "postId": "P1", "status": "approved"},
        })
        body = await resp.json()
        assert resp.status == 201
        assert body["outcome"] == "skipped"
        assert "C9" in body["error"]
        assert len(bus.log) == 0


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

class TestQueryService:
    @pytest.mark.asyncio
    async def test_posts_with_comments(self, aiohttp_client, blog_history):
        client = await aiohttp_client(create_query_app(_service(ServiceRole.QUERY)))
        for seq, event in enumerate(blog_history, start=1):
            resp = await client.post("/events", json={"sequence": seq, **event.to_wire()})
            assert resp.status == 201

        resp = await client.get("/posts")
        body = await resp.json()
        assert set(body) == {"P1", "P2"}
        assert body["P1"]["title"] == "First"
        assert [(c["id"], c["status"]) for c in body["P1"]["comments"]] == [
            ("C1", "approved"), ("C2", "rejected"),
        ]
        assert body["P2"]["comments"][0]["content"] == "hello there"

    @pytest.mark.asyncio
    async def test_comments_of_unknown_post(self, aiohttp_client):
        client = await aiohttp_client(create_query_app(_service(ServiceRole.QUERY)))
        resp = await client.get("/posts/NOPE/comments")
        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_unknown_event_kind_is_ignored(self, aiohttp_client):
        client = await aiohttp_client(create_query_app(_service(ServiceRole.QUERY)))
        resp = await client.post("/events", json={"type": "postArchived", "data": {}})
        assert resp.status == 201
        assert await resp.json() == {"outcome": "ignored"}

    @pytest.mark.asyncio
    async def test_event_without_type_is_rejected(self, aiohttp_client):
        client = await aiohttp_client(create_query_app(_service(ServiceRole.QUERY)))
        resp = await client.post("/events", json={"data": {}})
        assert resp.status == 400


# ---------------------------------------------------------------------------
# Replay on startup
# ---------------------------------------------------------------------------

class TestStartupReplay:
    @pytest.mark.asyncio
    async def test_state_is_replayed_before_serving(self, aiohttp_client, event_log):
        service = ProjectionService(ServiceRole.QUERY)
        replay = ReplayClient(LogHistorySource(event_log), service.reducer)
        client = await aiohttp_client(create_query_app(service, replay=replay))

        resp = await client.get("/health")
        body = await resp.json()
        assert resp.status == 200
        assert body["replayed_through"] == len(event_log)
        assert body["posts"] == 2

        resp = await client.get("/posts/P1/comments")
        assert [c["id"] for c in await resp.json()] == ["C1", "C2"]

    @pytest.mark.asyncio
    async def test_replay_failure_aborts_startup(self, aiohttp_server):
        class _Unavailable:
            async def fetch(self):
                raise ReplayError("bus unreachable")

        service = ProjectionService(ServiceRole.QUERY)
        replay = ReplayClient(_Unavailable(), service.reducer)
        with pytest.raises(ReplayError):
            await aiohttp_server(create_query_app(service, replay=replay))
        assert not service.ready

    @pytest.mark.asyncio
    async def test_not_ready_before_replay(self):
        service = ProjectionService(ServiceRole.POSTS)
        assert not service.ready
        await service.bootstrap(
            ReplayClient(LogHistorySource(EventLog()), service.reducer)
        )
        assert service.ready


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------

class TestModerationService:
    @pytest.mark.parametrize("content, status", [
        ("I love orange", "rejected"),
        ("lovely post", "approved"),
    ])
    @pytest.mark.asyncio
    async def test_publishes_decision(self, aiohttp_client, bus_backend, content, status):
        bus, bus_client = bus_backend
        client = await aiohttp_client(create_moderation_app(ModerationPolicy(), bus_client))

        resp = await client.post("/events", json={
            "sequence": 3,
            "type": "commentCreated",
            "data": {"id": "C1", "postId": "P1", "content": content, "status": "pending"},
        })
        assert resp.status == 201
        assert await resp.json() == {"outcome": "applied", "status": status}

        [entry] = bus.history()
        assert entry.event.type == "commentModerated"
        assert entry.event.data == {
            "id": "C1", "postId": "P1", "content": content, "status": status,
        }

    @pytest.mark.asyncio
    async def test_other_kinds_are_ignored(self, aiohttp_client, bus_backend):
        bus, bus_client = bus_backend
        client = await aiohttp_client(create_moderation_app(ModerationPolicy(), bus_client))
        resp = await client.post("/events", json=_P1.to_wire())
        assert await resp.json() == {"outcome": "ignored"}
        assert len(bus.log) == 0

    @pytest.mark.asyncio
    async def test_malformed_comment_is_skipped(self, aiohttp_client, bus_backend):
        bus, bus_client = bus_backend
        client = await aiohttp_client(create_moderation_app(ModerationPolicy(), bus_client))
        resp = await client.post("/events", json={
            "type": "commentCreated", "data": {"id": "C1"},
        })
        assert resp.status == 201
        assert (await resp.json())["outcome"] == "skipped"
        assert len(bus.log) == 0
