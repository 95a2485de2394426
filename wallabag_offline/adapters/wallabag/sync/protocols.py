"""Protocol definitions (ports) for wallabag sync.

Keeping these as Protocols isolates the sync orchestration from the
concrete SQLite store and HTTP client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager
    from datetime import datetime

    from wallabag_offline.adapters.wallabag.models import EntriesFilter, NewEntry, PatchEntry
    from wallabag_offline.config.wallabag import WallabagConfig
    from wallabag_offline.domain.models import Annotation, Entry, NewAnnotation, Tag


class WallabagClientProtocol(Protocol):
    async def get_entries(self, entries_filter: EntriesFilter | None = None) -> list[Entry]: ...

    async def get_entry(self, entry_id: int) -> Entry: ...

    async def create_entry(self, new_entry: NewEntry) -> Entry: ...

    async def update_entry(self, entry_id: int, patch: PatchEntry) -> Entry: ...

    async def delete_entry(self, entry_id: int) -> Entry: ...

    async def get_annotations(self, entry_id: int) -> list[Annotation]: ...

    async def create_annotation(self, entry_id: int, annotation: NewAnnotation) -> Annotation: ...

    async def update_annotation(self, annotation: Annotation) -> Annotation: ...

    async def delete_annotation(self, annotation_id: int) -> Annotation: ...


class WallabagClientFactory(Protocol):
    def __call__(
        self, config: WallabagConfig
    ) -> AbstractAsyncContextManager[WallabagClientProtocol]: ...


class LocalStoreRepository(Protocol):
    async def async_get_entry(self, entry_id: int) -> Entry | None: ...

    async def async_get_entries_since(self, since: datetime) -> list[Entry]: ...

    async def async_save_entry(self, entry: Entry) -> None: ...

    async def async_delete_entry(self, entry_id: int) -> bool: ...

    async def async_get_all_entry_ids(self) -> set[int]: ...

    async def async_get_annotation(self, annotation_id: int) -> Annotation | None: ...

    async def async_get_annotations_since(
        self, since: datetime
    ) -> list[tuple[int, Annotation]]: ...

    async def async_save_annotation(self, annotation: Annotation, entry_id: int) -> None: ...

    async def async_delete_annotation(self, annotation_id: int) -> bool: ...

    async def async_get_all_annotation_ids(self) -> set[int]: ...

    async def async_add_new_url(self, url: str) -> int: ...

    async def async_get_new_urls(self) -> list[tuple[int, str]]: ...

    async def async_remove_new_url(self, local_id: int) -> None: ...

    async def async_add_new_annotation(self, entry_id: int, annotation: NewAnnotation) -> int: ...

    async def async_get_new_annotations(self) -> list[tuple[int, int, NewAnnotation]]: ...

    async def async_remove_new_annotation(self, local_id: int) -> None: ...

    async def async_mark_entry_deleted(self, entry_id: int) -> None: ...

    async def async_get_entry_deletes(self) -> list[int]: ...

    async def async_remove_delete_entry(self, entry_id: int) -> None: ...

    async def async_mark_annotation_deleted(self, annotation_id: int) -> None: ...

    async def async_get_annotation_deletes(self) -> list[int]: ...

    async def async_remove_delete_annotation(self, annotation_id: int) -> None: ...

    async def async_delete_unused_tags(self) -> int: ...

    async def async_get_tags(self) -> list[Tag]: ...

    async def async_get_last_sync(self) -> datetime: ...

    async def async_touch_last_sync(self, at: datetime | None = None) -> datetime: ...
