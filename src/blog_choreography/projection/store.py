"""Aggregate stores and the projection state built on them.

The reducer only ever talks to :class:`AggregateStore` (get / upsert /
delete by id), so swapping the in-memory dicts for a durable store touches
this module and nothing else.
"""

from __future__ import annotations

from typing import Any, Generic, Iterator, Protocol, TypeVar

from blog_choreography.projection.models import Comment, Post

T = TypeVar("T")


class AggregateStore(Protocol[T]):
    """Keyed storage for one aggregate kind."""

    def get(self, aggregate_id: str) -> T | None: ...

    def upsert(self, aggregate_id: str, aggregate: T) -> None: ...

    def delete(self, aggregate_id: str) -> T | None: ...

    def values(self) -> list[T]: ...

    def snapshot(self) -> dict[str, T]: ...

    def clear(self) -> None: ...

    def __len__(self) -> int: ...


class InMemoryAggregateStore(Generic[T]):
    """Dict-backed store.  Iteration follows first-insertion order."""

    def __init__(self, items: dict[str, T] | None = None) -> None:
        self._items: dict[str, T] = dict(items or {})

    def get(self, aggregate_id: str) -> T | None:
        return self._items.get(aggregate_id)

    def upsert(self, aggregate_id: str, aggregate: T) -> None:
        self._items[aggregate_id] = aggregate

    def delete(self, aggregate_id: str) -> T | None:
        return self._items.pop(aggregate_id, None)

    def values(self) -> list[T]:
        return list(self._items.values())

    def snapshot(self) -> dict[str, T]:
        return dict(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.values())

    def __contains__(self, aggregate_id: object) -> bool:
        return aggregate_id in self._items


class ProjectionState:
    """A service's local view: posts plus the comments attached to them."""

    def __init__(
        self,
        posts: AggregateStore[Post] | None = None,
        comments: AggregateStore[Comment] | None = None,
    ) -> None:
        self.posts: AggregateStore[Post] = (
            posts if posts is not None else InMemoryAggregateStore()
        )
        self.comments: AggregateStore[Comment] = (
            comments if comments is not None else InMemoryAggregateStore()
        )

    def comments_for(self, post_id: str) -> list[Comment]:
        return [c for c in self.comments.values() if c.post_id == post_id]

    def copy(self) -> ProjectionState:
        """Independent in-memory copy.  Aggregates are frozen and shared."""
        return ProjectionState(
            posts=InMemoryAggregateStore(self.posts.snapshot()),
            comments=InMemoryAggregateStore(self.comments.snapshot()),
        )

    def clear(self) -> None:
        self.posts.clear()
        self.comments.clear()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return {
            "posts": self.posts.snapshot(),
            "comments": self.comments.snapshot(),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProjectionState):
            return NotImplemented
        return self.snapshot() == other.snapshot()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ProjectionState(posts={len(self.posts)}, comments={len(self.comments)})"

    # -- Views -------------------------------------------------------------

    def posts_with_comments(self) -> dict[str, dict[str, Any]]:
        """``{post_id: {"id", "title", "comments": [...]}}``, the query view."""
        return {
            post.id: {
                **post.to_wire(),
                "comments": [c.to_wire() for c in self.comments_for(post.id)],
            }
            for post in self.posts.values()
        }
