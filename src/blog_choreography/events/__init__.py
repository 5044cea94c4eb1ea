"""Event envelope and payload schemas."""

from blog_choreography.events.schema import (
    PAYLOAD_MODELS,
    CommentCreated,
    CommentModerated,
    CommentUpdated,
    Event,
    EventPayload,
    PostCreated,
    PostDeleted,
    decode,
    parse_payload,
    validate,
)

__all__ = [
    "PAYLOAD_MODELS",
    "CommentCreated",
    "CommentModerated",
    "CommentUpdated",
    "Event",
    "EventPayload",
    "PostCreated",
    "PostDeleted",
    "decode",
    "parse_payload",
    "validate",
]
