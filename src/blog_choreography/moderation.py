"""Comment moderation policy.

A pure content rule: a comment mentioning any disallowed token is rejected,
everything else is approved.  Matching is case-insensitive substring search.
The same content always gets the same decision.
"""

from __future__ import annotations

from collections.abc import Iterable

from blog_choreography.core.enums import CommentStatus
from blog_choreography.events.schema import CommentCreated, CommentModerated, Event

DEFAULT_DISALLOWED_TOKENS: tuple[str, ...] = ("orange",)


class ModerationPolicy:
    def __init__(self, disallowed_tokens: Iterable[str] = DEFAULT_DISALLOWED_TOKENS) -> None:
        self.disallowed_tokens: tuple[str, ...] = tuple(
            t.lower() for t in disallowed_tokens if t
        )

    def decide(self, content: str) -> CommentStatus:
        lowered = content.lower()
        if any(token in lowered for token in self.disallowed_tokens):
            return CommentStatus.REJECTED
        return CommentStatus.APPROVED

    def moderate(self, comment: CommentCreated) -> Event:
        """Build the ``commentModerated`` event for a created comment."""
        return CommentModerated(
            id=comment.id,
            post_id=comment.post_id,
            content=comment.content,
            status=self.decide(comment.content),
        ).to_event()


def decide(content: str) -> CommentStatus:
    """Decide with the default token set."""
    return _DEFAULT_POLICY.decide(content)


_DEFAULT_POLICY = ModerationPolicy()
