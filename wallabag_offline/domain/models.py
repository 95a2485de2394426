"""Pydantic models for cached wallabag entities.

The same models describe what the server returns and what the local store
persists, so a pulled entry can be written without translation.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from wallabag_offline.core.time_utils import ensure_utc


def _coerce_utc(value: Any) -> Any:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


class Tag(BaseModel):
    """Tag as assigned by the server."""

    id: int
    label: str
    slug: str

    model_config = {"populate_by_name": True, "extra": "ignore"}


class Range(BaseModel):
    """Span of an annotation inside the entry content (annotator.js format)."""

    start: str | None = None
    start_offset: int = Field(alias="startOffset")
    end: str | None = None
    end_offset: int = Field(alias="endOffset")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class Annotation(BaseModel):
    """Highlight or note attached to one entry."""

    id: int
    annotator_schema_version: str = "v1.0"
    created_at: datetime
    updated_at: datetime
    quote: str | None = None
    ranges: list[Range] = Field(default_factory=list)
    text: str = ""
    user: str | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _normalize_timestamps(cls, value: Any) -> Any:
        return _coerce_utc(value)

    @field_validator("text", mode="before")
    @classmethod
    def _null_text(cls, value: Any) -> Any:
        return "" if value is None else value


class NewAnnotation(BaseModel):
    """Annotation payload that has not been assigned an id yet."""

    quote: str | None = None
    ranges: list[Range] = Field(default_factory=list)
    text: str = ""
    user: str | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Entry(BaseModel):
    """Saved article."""

    id: int
    title: str | None = None
    url: str | None = None
    content: str | None = None
    created_at: datetime
    updated_at: datetime
    is_archived: bool = False
    is_starred: bool = False
    is_public: bool = False
    domain_name: str | None = None
    http_status: str | None = None
    language: str | None = None
    mimetype: str | None = None
    origin_url: str | None = None
    preview_picture: str | None = None
    published_at: datetime | None = None
    published_by: list[str] | None = None
    reading_time: int | None = None
    starred_at: datetime | None = None
    uid: str | None = None
    headers: dict[str, str] | None = None
    user_email: str | None = None
    user_id: int | None = None
    user_name: str | None = None
    tags: list[Tag] = Field(default_factory=list)
    # Only present when the server embeds them (listing, single fetch).
    annotations: list[Annotation] | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("created_at", "updated_at", "published_at", "starred_at", mode="before")
    @classmethod
    def _normalize_timestamps(cls, value: Any) -> Any:
        return _coerce_utc(value)

    @field_validator("http_status", mode="before")
    @classmethod
    def _stringify_status(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("headers", mode="before")
    @classmethod
    def _drop_null_headers(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if v is not None}
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def tag_labels(self) -> list[str]:
        return [tag.label for tag in self.tags]
