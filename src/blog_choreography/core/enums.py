"""Enumerations shared by the bus and the services."""

from enum import Enum


class EventKind(str, Enum):
    POST_CREATED = "postCreated"
    POST_DELETED = "postDeleted"
    COMMENT_CREATED = "commentCreated"
    COMMENT_MODERATED = "commentModerated"
    COMMENT_UPDATED = "commentUpdated"


class CommentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ServiceRole(str, Enum):
    BUS = "bus"
    POSTS = "posts"
    COMMENTS = "comments"
    QUERY = "query"
    MODERATION = "moderation"


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"  # recoverable projection error
    IGNORED = "ignored"  # unknown kind


class DispatchOutcome(str, Enum):
    DELIVERED = "delivered"
    REJECTED = "rejected"  # subscriber answered with a non-2xx status
    FAILED = "failed"  # transport error, timeout or callback exception
