"""Pydantic models for wallabag API requests and sync results."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, computed_field

from wallabag_offline.core.time_utils import to_epoch_seconds
from wallabag_offline.domain.models import Entry


def _wire_payload(model: BaseModel) -> dict[str, Any]:
    """Serialize for the API: drop unset fields, send booleans as 0/1."""
    payload = model.model_dump(mode="json", exclude_none=True)
    return {k: int(v) if isinstance(v, bool) else v for k, v in payload.items()}


class TokenInfo(BaseModel):
    """OAuth token returned by ``/oauth/v2/token``."""

    access_token: str
    expires_in: int
    token_type: str
    scope: str | None = None
    refresh_token: str

    model_config = {"populate_by_name": True, "extra": "ignore"}


class NewEntry(BaseModel):
    """Request to create a new entry. Only ``url`` is required."""

    url: str
    title: str | None = None
    # Tag labels; sent comma separated.
    tags: list[str] | None = None
    archive: bool | None = None
    starred: bool | None = None
    public: bool | None = None
    content: str | None = None
    language: str | None = None
    preview_picture: str | None = None
    published_at: datetime | None = None
    # Formatted as "name 1, name 2"
    authors: str | None = None
    origin_url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = _wire_payload(self)
        if self.tags is not None:
            payload["tags"] = ",".join(self.tags)
        return payload


class PatchEntry(BaseModel):
    """Fields of an entry that can be changed through the API.

    ``None`` leaves the field unchanged on the server.
    """

    title: str | None = None
    tags: list[str] | None = None
    archive: bool | None = None
    starred: bool | None = None
    public: bool | None = None
    content: str | None = None
    language: str | None = None
    preview_picture: str | None = None
    published_at: datetime | None = None
    authors: str | None = None
    origin_url: str | None = None

    @classmethod
    def from_entry(cls, entry: Entry) -> PatchEntry:
        """Build the patch that pushes a local entry's editable state."""
        return cls(
            title=entry.title,
            tags=entry.tag_labels,
            archive=entry.is_archived,
            starred=entry.is_starred,
            public=entry.is_public,
            content=entry.content,
            language=entry.language,
            preview_picture=entry.preview_picture,
            published_at=entry.published_at,
            origin_url=entry.origin_url,
        )

    def to_payload(self) -> dict[str, Any]:
        payload = _wire_payload(self)
        if self.tags is not None:
            payload["tags"] = ",".join(self.tags)
        return payload


class SortBy(StrEnum):
    CREATED = "created"
    UPDATED = "updated"


class SortOrder(StrEnum):
    ASC = "asc"
    DESC = "desc"


class EntriesFilter(BaseModel):
    """Filters for listing entries. Defaults match the server's own defaults."""

    archive: bool | None = None
    starred: bool | None = None
    public: bool | None = None
    sort: SortBy = SortBy.CREATED
    order: SortOrder = SortOrder.DESC
    # Entries must carry all of these tags. Labels must not contain commas.
    tags: list[str] = Field(default_factory=list)
    # Unix timestamp; only entries updated at or after it are returned.
    since: int = 0
    per_page: int | None = None

    @classmethod
    def updated_since(cls, since: datetime, per_page: int | None = None) -> EntriesFilter:
        return cls(
            sort=SortBy.UPDATED,
            order=SortOrder.ASC,
            since=to_epoch_seconds(since),
            per_page=per_page,
        )

    def to_params(self, page: int) -> dict[str, str | int]:
        params: dict[str, str | int] = {
            "sort": self.sort.value,
            "order": self.order.value,
            "since": self.since,
            "page": page,
        }
        if self.tags:
            params["tags"] = ",".join(self.tags)
        for name in ("archive", "starred", "public"):
            value = getattr(self, name)
            if value is not None:
                params[name] = int(value)
        if self.per_page is not None:
            params["perPage"] = self.per_page
        return params


class EntriesPage(BaseModel):
    """One page of entries from ``/api/entries.json``."""

    per_page: int = Field(alias="limit")
    current_page: int = Field(alias="page")
    total_pages: int = Field(alias="pages")
    total_entries: int = Field(alias="total")
    entries: list[Entry] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> EntriesPage:
        embedded = data.get("_embedded") or {}
        return cls.model_validate({**data, "entries": embedded.get("items", [])})


class SyncResult(BaseModel):
    """Counters for one sync run."""

    mode: str  # 'incremental' or 'full'
    correlation_id: str | None = None
    remote_annotation_deletes: int = 0
    remote_entry_deletes: int = 0
    entries_pulled: int = 0
    entries_pushed: int = 0
    entries_unchanged: int = 0
    annotations_pulled: int = 0
    annotations_pushed: int = 0
    annotations_unchanged: int = 0
    local_entry_deletes: int = 0
    local_annotation_deletes: int = 0
    entries_created: int = 0
    annotations_created: int = 0
    tags_purged: int = 0
    started_at: datetime | None = None
    synced_at: datetime | None = None
    duration_seconds: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def changes(self) -> int:
        """Total number of entities written locally or remotely."""
        return (
            self.remote_annotation_deletes
            + self.remote_entry_deletes
            + self.entries_pulled
            + self.entries_pushed
            + self.annotations_pulled
            + self.annotations_pushed
            + self.local_entry_deletes
            + self.local_annotation_deletes
            + self.entries_created
            + self.annotations_created
        )

    def counters(self) -> dict[str, Any]:
        return self.model_dump(exclude={"mode", "correlation_id", "started_at", "synced_at"})
