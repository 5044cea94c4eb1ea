"""Event envelope validation and per-kind payload variants.

Two layers:

*  The **envelope** (``{"type": ..., "data": {...}}``) is validated once at
   the ingestion boundary by :func:`validate`.  It checks that the kind is
   one of the five recognized kinds and that ``data`` is a mapping, nothing
   more.  Subscribers use the lenient :func:`decode`, which accepts unknown
   kinds so a receiver never breaks on an event kind added later.
*  The **payload** is parsed per kind by :func:`parse_payload` into one of
   the frozen variants below.  Consumers call it when they fold an event; a
   payload that does not fit raises :class:`MalformedPayloadError`, which is
   recoverable (the event is skipped, not the service).
"""

from __future__ import annotations

import copy
from typing import Annotated, Any, ClassVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
)

from blog_choreography.core.enums import CommentStatus, EventKind
from blog_choreography.core.errors import EventValidationError, MalformedPayloadError


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class Event(BaseModel):
    """An accepted event.  Immutable once built.

    ``type`` stays a plain string so receivers can carry kinds they do not
    know; :attr:`kind` resolves it against :class:`EventKind`.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def kind(self) -> EventKind | None:
        try:
            return EventKind(self.type)
        except ValueError:
            return None

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready ``{"type", "data"}`` dict (a copy; safe to mutate)."""
        return {"type": self.type, "data": copy.deepcopy(self.data)}


class _IngestEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: EventKind
    data: dict[str, Any] = Field(default_factory=dict)


class _ReceiveEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str
    data: dict[str, Any] = Field(default_factory=dict)


def _error_list(exc: ValidationError) -> list[dict[str, Any]]:
    """JSON-safe subset of pydantic's error details."""
    return [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


def validate(raw: Any) -> Event:
    """Validate a raw event at ingestion.

    Raises:
        EventValidationError: unknown kind, non-mapping ``data`` or a body
            that is not an object at all.
    """
    try:
        envelope = _IngestEnvelope.model_validate(raw)
    except ValidationError as exc:
        raise EventValidationError(_error_list(exc)) from exc
    return Event(type=envelope.type.value, data=copy.deepcopy(envelope.data))


def decode(raw: Any) -> Event:
    """Decode an event received from the bus.  Unknown kinds pass through."""
    try:
        envelope = _ReceiveEnvelope.model_validate(raw)
    except ValidationError as exc:
        raise EventValidationError(_error_list(exc)) from exc
    return Event(type=envelope.type, data=copy.deepcopy(envelope.data))


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------

def _lower(value: Any) -> Any:
    # Producers have historically sent "Pending" as well as "pending".
    return value.lower() if isinstance(value, str) else value


EntityId = Annotated[str, Field(min_length=1)]
Status = Annotated[CommentStatus, BeforeValidator(_lower)]


def _pending_if_unknown(value: Any) -> Any:
    # New comments are stored as pending whatever the producer sent.
    value = _lower(value)
    try:
        return CommentStatus(value)
    except ValueError:
        return CommentStatus.PENDING


CreatedStatus = Annotated[CommentStatus, BeforeValidator(_pending_if_unknown)]


class EventPayload(BaseModel):
    """Base for the per-kind payloads.  Wire names are camelCase."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    kind: ClassVar[EventKind]

    def to_event(self) -> Event:
        return Event(
            type=self.kind.value,
            data=self.model_dump(by_alias=True, mode="json"),
        )


class PostCreated(EventPayload):
    kind: ClassVar[EventKind] = EventKind.POST_CREATED

    id: EntityId
    title: str


class PostDeleted(EventPayload):
    kind: ClassVar[EventKind] = EventKind.POST_DELETED

    id: EntityId


class CommentCreated(EventPayload):
    kind: ClassVar[EventKind] = EventKind.COMMENT_CREATED

    id: EntityId
    post_id: EntityId = Field(alias="postId")
    content: str
    status: CreatedStatus = CommentStatus.PENDING


class CommentModerated(EventPayload):
    kind: ClassVar[EventKind] = EventKind.COMMENT_MODERATED

    id: EntityId
    post_id: EntityId = Field(alias="postId")
    status: Status
    content: str = ""


class CommentUpdated(EventPayload):
    kind: ClassVar[EventKind] = EventKind.COMMENT_UPDATED

    id: EntityId
    post_id: EntityId = Field(alias="postId")
    content: str
    status: Status


# Kind → payload variant
PAYLOAD_MODELS: dict[EventKind, type[EventPayload]] = {
    cls.kind: cls
    for cls in (PostCreated, PostDeleted, CommentCreated, CommentModerated, CommentUpdated)
}


def parse_payload(event: Event) -> EventPayload | None:
    """Parse ``event.data`` into the variant for its kind.

    Returns ``None`` for kinds this version does not know.

    Raises:
        MalformedPayloadError: the data is missing fields or has wrong types.
    """
    kind = event.kind
    if kind is None:
        return None
    try:
        return PAYLOAD_MODELS[kind].model_validate(event.data)
    except ValidationError as exc:
        detail = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        raise MalformedPayloadError(kind.value, detail) from exc
