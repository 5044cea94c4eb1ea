"""Fold events into a :class:`ProjectionState`.

The same reducer runs for startup replay and for live events, which is what
makes the two paths produce identical state.

Rules
-----
*  Every transition is idempotent: applying an event twice leaves the state
   as applying it once did.  Delivery can duplicate (a live event arriving
   while replay is folding the same history, an operator re-posting).
*  Referential problems (a comment for a post this service never saw, a
   moderation result for an unknown comment) and malformed payloads are
   *recoverable*: the event is skipped and reported, later events still
   apply.  Parents are never invented.
*  Unknown kinds are ignored so old services survive new producers.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from blog_choreography.core.enums import ApplyOutcome, CommentStatus, EventKind
from blog_choreography.core.errors import (
    ProjectionError,
    UnknownCommentError,
    UnknownPostError,
)
from blog_choreography.events.schema import (
    CommentCreated,
    CommentModerated,
    CommentUpdated,
    Event,
    PostCreated,
    PostDeleted,
    parse_payload,
)
from blog_choreography.observability.metrics import record_projection
from blog_choreography.projection.models import Comment, Post
from blog_choreography.projection.store import ProjectionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplyResult:
    """What happened when one event was folded."""

    outcome: ApplyOutcome
    event_type: str
    error: ProjectionError | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is ApplyOutcome.APPLIED


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _post_created(state: ProjectionState, p: PostCreated) -> None:
    state.posts.upsert(p.id, Post(id=p.id, title=p.title))


def _post_deleted(state: ProjectionState, p: PostDeleted) -> None:
    for comment in state.comments_for(p.id):
        state.comments.delete(comment.id)
    state.posts.delete(p.id)


def _comment_created(state: ProjectionState, p: CommentCreated) -> None:
    if state.posts.get(p.post_id) is None:
        raise UnknownPostError(p.post_id)
    if state.comments.get(p.id) is not None:
        # Already projected; a repeat must not undo a later moderation.
        return
    state.comments.upsert(
        p.id,
        Comment(id=p.id, post_id=p.post_id, content=p.content, status=CommentStatus.PENDING),
    )


def _find_comment(state: ProjectionState, comment_id: str, post_id: str) -> Comment:
    if state.posts.get(post_id) is None:
        raise UnknownPostError(post_id)
    comment = state.comments.get(comment_id)
    if comment is None or comment.post_id != post_id:
        raise UnknownCommentError(comment_id, post_id)
    return comment


def _comment_moderated(state: ProjectionState, p: CommentModerated) -> None:
    comment = _find_comment(state, p.id, p.post_id)
    state.comments.upsert(p.id, comment.model_copy(update={"status": p.status}))


def _comment_updated(state: ProjectionState, p: CommentUpdated) -> None:
    comment = _find_comment(state, p.id, p.post_id)
    state.comments.upsert(
        p.id,
        comment.model_copy(update={"status": p.status, "content": p.content}),
    )


_TRANSITIONS: dict[EventKind, Callable[[ProjectionState, Any], None]] = {
    EventKind.POST_CREATED: _post_created,
    EventKind.POST_DELETED: _post_deleted,
    EventKind.COMMENT_CREATED: _comment_created,
    EventKind.COMMENT_MODERATED: _comment_moderated,
    EventKind.COMMENT_UPDATED: _comment_updated,
}


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------

class ProjectionReducer:
    """Applies events to a state, reporting skipped ones.

    Parameters
    ----------
    name:
        Owning service, used in logs and metric labels.
    max_recent_errors:
        How many skipped-event errors to keep for inspection.
    """

    def __init__(self, name: str = "projection", max_recent_errors: int = 100) -> None:
        self.name = name
        self._recent_errors: deque[tuple[str, ProjectionError]] = deque(
            maxlen=max_recent_errors
        )
        self._counts: dict[ApplyOutcome, int] = {o: 0 for o in ApplyOutcome}

    def apply(self, state: ProjectionState, event: Event) -> ApplyResult:
        """Fold *event* into *state* in place."""
        kind = event.kind
        if kind is None:
            logger.debug("%s: ignoring unknown event type %s", self.name, event.type)
            return self._record(ApplyResult(ApplyOutcome.IGNORED, event.type), label="unknown")

        try:
            payload = parse_payload(event)
            _TRANSITIONS[kind](state, payload)
        except ProjectionError as exc:
            logger.warning(
                "%s: skipped %s: %s", self.name, event.type, exc,
            )
            self._recent_errors.append((event.type, exc))
            return self._record(ApplyResult(ApplyOutcome.SKIPPED, event.type, exc))

        return self._record(ApplyResult(ApplyOutcome.APPLIED, event.type))

    def fold(self, state: ProjectionState, events: Iterable[Event]) -> list[ApplyResult]:
        """Apply *events* in order."""
        return [self.apply(state, event) for event in events]

    def _record(self, result: ApplyResult, label: str | None = None) -> ApplyResult:
        self._counts[result.outcome] += 1
        record_projection(self.name, label or result.event_type, result.outcome.value)
        return result

    # -- Introspection -----------------------------------------------------

    @property
    def recent_errors(self) -> list[tuple[str, ProjectionError]]:
        return list(self._recent_errors)

    @property
    def counts(self) -> dict[str, int]:
        return {outcome.value: n for outcome, n in self._counts.items()}


def reduce(
    state: ProjectionState,
    event: Event,
    reducer: ProjectionReducer | None = None,
) -> ProjectionState:
    """Pure form of :meth:`ProjectionReducer.apply`: returns a new state."""
    new_state = state.copy()
    (reducer or ProjectionReducer()).apply(new_state, event)
    return new_state
