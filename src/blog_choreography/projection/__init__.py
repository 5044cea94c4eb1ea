"""Projections: aggregate stores, the reducer and startup replay."""

from blog_choreography.projection.models import Comment, Post
from blog_choreography.projection.reducer import ApplyResult, ProjectionReducer, reduce
from blog_choreography.projection.replay import (
    HttpHistorySource,
    LogHistorySource,
    ReplayClient,
)
from blog_choreography.projection.store import (
    AggregateStore,
    InMemoryAggregateStore,
    ProjectionState,
)

__all__ = [
    "AggregateStore",
    "ApplyResult",
    "Comment",
    "HttpHistorySource",
    "InMemoryAggregateStore",
    "LogHistorySource",
    "Post",
    "ProjectionReducer",
    "ProjectionState",
    "ReplayClient",
    "reduce",
]
