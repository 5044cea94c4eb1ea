"""Shared fixtures for the blog-choreography test suite."""

from __future__ import annotations

import pytest

from blog_choreography.bus.log import EventLog
from blog_choreography.events.schema import Event
from blog_choreography.projection.reducer import ProjectionReducer
from blog_choreography.projection.store import ProjectionState


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

@pytest.fixture
def state() -> ProjectionState:
    """Return an empty projection state."""
    return ProjectionState()


@pytest.fixture
def reducer() -> ProjectionReducer:
    return ProjectionReducer(name="test")


# ---------------------------------------------------------------------------
# Event history
# ---------------------------------------------------------------------------

@pytest.fixture
def blog_history() -> list[Event]:
    """Two posts, three comments, moderation and one update."""
    return [
        Event(type="postCreated", data={"id": "P1", "title": "First"}),
        Event(type="postCreated", data={"id": "P2", "title": "Second"}),
        Event(type="commentCreated", data={
            "id": "C1", "postId": "P1", "content": "nice", "status": "pending",
        }),
        Event(type="commentCreated", data={
            "id": "C2", "postId": "P1", "content": "orange is bad", "status": "pending",
        }),
        Event(type="commentCreated", data={
            "id": "C3", "postId": "P2", "content": "hello", "status": "pending",
        }),
        Event(type="commentModerated", data={
            "id": "C1", "postId": "P1", "status": "approved", "content": "nice",
        }),
        Event(type="commentModerated", data={
            "id": "C2", "postId": "P1", "status": "rejected", "content": "orange is bad",
        }),
        Event(type="commentUpdated", data={
            "id": "C3", "postId": "P2", "status": "approved", "content": "hello there",
        }),
    ]


@pytest.fixture
def event_log(blog_history: list[Event]) -> EventLog:
    """An event log pre-filled with ``blog_history``."""
    log = EventLog()
    for event in blog_history:
        log.append(event)
    return log
