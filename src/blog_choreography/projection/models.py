"""Post and comment aggregates.

Aggregates are frozen; the reducer replaces them in the store instead of
mutating them, so a snapshot handed out earlier never changes underneath
its holder.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from blog_choreography.core.enums import CommentStatus


class Post(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class Comment(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    post_id: str = Field(alias="postId")
    content: str
    status: CommentStatus = CommentStatus.PENDING

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
