"""Custom exception hierarchy for the choreography services."""

from __future__ import annotations

from typing import Any


class ChoreographyError(Exception):
    """Base exception for all errors raised by this package."""


# --- Configuration ---
class ConfigError(ChoreographyError):
    """Invalid or missing configuration."""


# --- Ingestion ---
class EventValidationError(ChoreographyError):
    """Raw event rejected at the ingestion boundary.

    ``errors`` holds one dict per problem (``loc``, ``msg``, ``type``) so the
    HTTP layer can hand it back to the producer unchanged.
    """

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        summary = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ())) or '<root>'}: {e.get('msg', '')}"
            for e in errors
        )
        super().__init__(f"Invalid event: {summary}")


# --- Projection ---
class ProjectionError(ChoreographyError):
    """Event could not be folded into a projection. Recoverable: skip it."""


class UnknownPostError(ProjectionError):
    """Event references a post this projection has never seen."""

    def __init__(self, post_id: str):
        self.post_id = post_id
        super().__init__(f"Unknown post: {post_id!r}")


class UnknownCommentError(ProjectionError):
    """Event references a comment this projection has never seen."""

    def __init__(self, comment_id: str, post_id: str):
        self.comment_id = comment_id
        self.post_id = post_id
        super().__init__(f"Unknown comment {comment_id!r} on post {post_id!r}")


class MalformedPayloadError(ProjectionError):
    """Event data does not fit the payload shape of its kind."""

    def __init__(self, kind: str, detail: str):
        self.kind = kind
        self.detail = detail
        super().__init__(f"Malformed {kind} payload: {detail}")


# --- Replay ---
class ReplayError(ChoreographyError):
    """History could not be fetched or folded. Fatal to service startup."""


# --- Publishing ---
class PublishError(ChoreographyError):
    """The bus did not accept an event a service tried to publish."""
