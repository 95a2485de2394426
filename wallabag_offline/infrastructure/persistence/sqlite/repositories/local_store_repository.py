"""SQLite implementation of the local wallabag store.

This adapter persists cached entries, annotations and tags together with
the pending-change queues and the sync watermark. Every method runs the
blocking peewee work through the session manager and surfaces failures as
``StorageError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from wallabag_offline.core.time_utils import ensure_utc, to_iso, utc_now
from wallabag_offline.db.models import (
    SYNC_STATE_ID,
    AnnotationRecord,
    EntryRecord,
    PendingAnnotationDelete,
    PendingEntryDelete,
    PendingNewAnnotation,
    PendingNewUrl,
    SyncState,
    TagLink,
    TagRecord,
    database_proxy,
    model_to_dict,
)
from wallabag_offline.domain.models import Annotation, Entry, NewAnnotation, Range, Tag
from wallabag_offline.infrastructure.persistence.sqlite.base import SqliteBaseRepository

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime


def _entry_from_record(record: EntryRecord) -> Entry:
    return Entry.model_validate(model_to_dict(record))


def _annotation_from_record(record: AnnotationRecord) -> Annotation:
    return Annotation.model_validate(model_to_dict(record))


def _entry_row(entry: Entry) -> dict[str, Any]:
    row = entry.model_dump(exclude={"annotations", "tags"})
    row["tags"] = [tag.model_dump() for tag in entry.tags]
    return row


def _ranges_blob(ranges: Iterable[Range]) -> list[dict[str, Any]]:
    return [r.model_dump(mode="json", by_alias=True) for r in ranges]


def _upsert_tag(tag: Tag) -> None:
    TagRecord.insert(id=tag.id, label=tag.label, slug=tag.slug).on_conflict(
        conflict_target=[TagRecord.id],
        preserve=[TagRecord.label, TagRecord.slug],
    ).execute()


def _link_tag(entry_id: int, tag_id: int) -> None:
    TagLink.insert(tag=tag_id, entry=entry_id).on_conflict_ignore().execute()


class SqliteLocalStoreRepositoryAdapter(SqliteBaseRepository):
    """Adapter for the local cache tables."""

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def async_get_entry(self, entry_id: int) -> Entry | None:
        def _query() -> Entry | None:
            record = EntryRecord.get_or_none(EntryRecord.id == entry_id)
            return _entry_from_record(record) if record else None

        return await self._execute(_query, operation_name="get_entry", read_only=True)

    async def async_get_all_entries(self) -> list[Entry]:
        def _query() -> list[Entry]:
            return [_entry_from_record(r) for r in EntryRecord.select().order_by(EntryRecord.id)]

        return await self._execute(_query, operation_name="get_all_entries", read_only=True)

    async def async_get_entries_since(self, since: datetime) -> list[Entry]:
        """Get entries with ``updated_at >= since``.

        Annotations are never embedded; load them with
        ``async_get_annotations_for_entry``.
        """

        def _query() -> list[Entry]:
            query = (
                EntryRecord.select()
                .where(EntryRecord.updated_at >= to_iso(since))
                .order_by(EntryRecord.updated_at, EntryRecord.id)
            )
            return [_entry_from_record(r) for r in query]

        return await self._execute(_query, operation_name="get_entries_since", read_only=True)

    async def async_save_entry(self, entry: Entry) -> None:
        """Upsert an entry and rebuild its tag links in one transaction.

        The tag list is written twice: as the JSON blob on the entry row and
        as normalized ``tags``/``taglinks`` rows.
        """

        def _save() -> None:
            row = _entry_row(entry)
            with database_proxy.atomic():
                EntryRecord.insert(**row).on_conflict(
                    conflict_target=[EntryRecord.id],
                    preserve=[
                        f for f in EntryRecord._meta.sorted_fields if f is not EntryRecord.id
                    ],
                ).execute()
                TagLink.delete().where(TagLink.entry == entry.id).execute()
                for tag in entry.tags:
                    _upsert_tag(tag)
                    _link_tag(entry.id, tag.id)

        await self._execute(_save, operation_name="save_entry")

    async def async_delete_entry(self, entry_id: int) -> bool:
        """Hard delete an entry; its annotations and tag links cascade.

        Returns:
            True if a row was removed, False if the entry was not cached
        """

        def _delete() -> bool:
            return EntryRecord.delete().where(EntryRecord.id == entry_id).execute() > 0

        return await self._execute(_delete, operation_name="delete_entry")

    async def async_get_all_entry_ids(self) -> set[int]:
        def _query() -> set[int]:
            return {r.id for r in EntryRecord.select(EntryRecord.id)}

        return await self._execute(_query, operation_name="get_all_entry_ids", read_only=True)

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    async def async_get_annotation(self, annotation_id: int) -> Annotation | None:
        def _query() -> Annotation | None:
            record = AnnotationRecord.get_or_none(AnnotationRecord.id == annotation_id)
            return _annotation_from_record(record) if record else None

        return await self._execute(_query, operation_name="get_annotation", read_only=True)

    async def async_get_annotation_entry_id(self, annotation_id: int) -> int | None:
        def _query() -> int | None:
            record = AnnotationRecord.get_or_none(AnnotationRecord.id == annotation_id)
            return record.entry_id if record else None

        return await self._execute(
            _query, operation_name="get_annotation_entry_id", read_only=True
        )

    async def async_get_annotations_since(self, since: datetime) -> list[tuple[int, Annotation]]:
        """Get ``(entry_id, annotation)`` pairs with ``updated_at >= since``."""

        def _query() -> list[tuple[int, Annotation]]:
            query = (
                AnnotationRecord.select()
                .where(AnnotationRecord.updated_at >= to_iso(since))
                .order_by(AnnotationRecord.updated_at, AnnotationRecord.id)
            )
            return [(r.entry_id, _annotation_from_record(r)) for r in query]

        return await self._execute(
            _query, operation_name="get_annotations_since", read_only=True
        )

    async def async_get_annotations_for_entry(self, entry_id: int) -> list[Annotation]:
        def _query() -> list[Annotation]:
            query = (
                AnnotationRecord.select()
                .where(AnnotationRecord.entry == entry_id)
                .order_by(AnnotationRecord.id)
            )
            return [_annotation_from_record(r) for r in query]

        return await self._execute(
            _query, operation_name="get_annotations_for_entry", read_only=True
        )

    async def async_save_annotation(self, annotation: Annotation, entry_id: int) -> None:
        """Upsert an annotation under the given entry."""

        def _save() -> None:
            AnnotationRecord.insert(
                id=annotation.id,
                annotator_schema_version=annotation.annotator_schema_version,
                created_at=annotation.created_at,
                updated_at=annotation.updated_at,
                ranges=_ranges_blob(annotation.ranges),
                text=annotation.text,
                quote=annotation.quote,
                user=annotation.user,
                entry=entry_id,
            ).on_conflict(
                conflict_target=[AnnotationRecord.id],
                preserve=[
                    f for f in AnnotationRecord._meta.sorted_fields if f is not AnnotationRecord.id
                ],
            ).execute()

        await self._execute(_save, operation_name="save_annotation")

    async def async_delete_annotation(self, annotation_id: int) -> bool:
        def _delete() -> bool:
            query = AnnotationRecord.delete().where(AnnotationRecord.id == annotation_id)
            return query.execute() > 0

        return await self._execute(_delete, operation_name="delete_annotation")

    async def async_get_all_annotation_ids(self) -> set[int]:
        def _query() -> set[int]:
            return {r.id for r in AnnotationRecord.select(AnnotationRecord.id)}

        return await self._execute(
            _query, operation_name="get_all_annotation_ids", read_only=True
        )

    # ------------------------------------------------------------------
    # Pending creates
    # ------------------------------------------------------------------

    async def async_add_new_url(self, url: str) -> int:
        def _insert() -> int:
            return PendingNewUrl.create(url=url).id

        return await self._execute(_insert, operation_name="add_new_url")

    async def async_get_new_urls(self) -> list[tuple[int, str]]:
        """Get queued URLs as ``(local_id, url)`` in insertion order."""

        def _query() -> list[tuple[int, str]]:
            return [(r.id, r.url) for r in PendingNewUrl.select().order_by(PendingNewUrl.id)]

        return await self._execute(_query, operation_name="get_new_urls", read_only=True)

    async def async_remove_new_url(self, local_id: int) -> None:
        def _delete() -> None:
            PendingNewUrl.delete().where(PendingNewUrl.id == local_id).execute()

        await self._execute(_delete, operation_name="remove_new_url")

    async def async_add_new_annotation(self, entry_id: int, annotation: NewAnnotation) -> int:
        def _insert() -> int:
            record = PendingNewAnnotation.create(
                entry=entry_id,
                quote=annotation.quote,
                text=annotation.text,
                ranges=_ranges_blob(annotation.ranges),
                user=annotation.user,
            )
            return record.id

        return await self._execute(_insert, operation_name="add_new_annotation")

    async def async_get_new_annotations(self) -> list[tuple[int, int, NewAnnotation]]:
        """Get queued annotations as ``(entry_id, local_id, payload)``."""

        def _query() -> list[tuple[int, int, NewAnnotation]]:
            query = PendingNewAnnotation.select().order_by(PendingNewAnnotation.id)
            return [
                (r.entry_id, r.id, NewAnnotation.model_validate(model_to_dict(r))) for r in query
            ]

        return await self._execute(_query, operation_name="get_new_annotations", read_only=True)

    async def async_remove_new_annotation(self, local_id: int) -> None:
        def _delete() -> None:
            PendingNewAnnotation.delete().where(PendingNewAnnotation.id == local_id).execute()

        await self._execute(_delete, operation_name="remove_new_annotation")

    # ------------------------------------------------------------------
    # Pending deletes
    # ------------------------------------------------------------------

    async def async_queue_entry_delete(self, entry_id: int) -> None:
        def _insert() -> None:
            PendingEntryDelete.insert(id=entry_id).on_conflict_ignore().execute()

        await self._execute(_insert, operation_name="queue_entry_delete")

    async def async_mark_entry_deleted(self, entry_id: int) -> None:
        """Queue the remote delete and drop the cached entry together."""

        def _mark() -> None:
            with database_proxy.atomic():
                PendingEntryDelete.insert(id=entry_id).on_conflict_ignore().execute()
                EntryRecord.delete().where(EntryRecord.id == entry_id).execute()

        await self._execute(_mark, operation_name="mark_entry_deleted")

    async def async_get_entry_deletes(self) -> list[int]:
        def _query() -> list[int]:
            return [r.id for r in PendingEntryDelete.select().order_by(PendingEntryDelete.id)]

        return await self._execute(_query, operation_name="get_entry_deletes", read_only=True)

    async def async_remove_delete_entry(self, entry_id: int) -> None:
        def _delete() -> None:
            PendingEntryDelete.delete().where(PendingEntryDelete.id == entry_id).execute()

        await self._execute(_delete, operation_name="remove_delete_entry")

    async def async_queue_annotation_delete(self, annotation_id: int) -> None:
        def _insert() -> None:
            PendingAnnotationDelete.insert(id=annotation_id).on_conflict_ignore().execute()

        await self._execute(_insert, operation_name="queue_annotation_delete")

    async def async_mark_annotation_deleted(self, annotation_id: int) -> None:
        """Queue the remote delete and drop the cached annotation together."""

        def _mark() -> None:
            with database_proxy.atomic():
                PendingAnnotationDelete.insert(id=annotation_id).on_conflict_ignore().execute()
                AnnotationRecord.delete().where(AnnotationRecord.id == annotation_id).execute()

        await self._execute(_mark, operation_name="mark_annotation_deleted")

    async def async_get_annotation_deletes(self) -> list[int]:
        def _query() -> list[int]:
            query = PendingAnnotationDelete.select().order_by(PendingAnnotationDelete.id)
            return [r.id for r in query]

        return await self._execute(
            _query, operation_name="get_annotation_deletes", read_only=True
        )

    async def async_remove_delete_annotation(self, annotation_id: int) -> None:
        def _delete() -> None:
            query = PendingAnnotationDelete.delete().where(
                PendingAnnotationDelete.id == annotation_id
            )
            query.execute()

        await self._execute(_delete, operation_name="remove_delete_annotation")

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    async def async_drop_tag_links_for_entry(self, entry_id: int) -> None:
        def _delete() -> None:
            TagLink.delete().where(TagLink.entry == entry_id).execute()

        await self._execute(_delete, operation_name="drop_tag_links_for_entry")

    async def async_save_tag(self, tag: Tag) -> None:
        await self._execute(_upsert_tag, tag, operation_name="save_tag")

    async def async_save_tag_link(self, entry_id: int, tag_id: int) -> None:
        await self._execute(_link_tag, entry_id, tag_id, operation_name="save_tag_link")

    async def async_delete_unused_tags(self) -> int:
        """Remove tags without any link rows.

        Returns:
            Number of tags removed
        """

        def _delete() -> int:
            linked = TagLink.select(TagLink.tag)
            return TagRecord.delete().where(TagRecord.id.not_in(linked)).execute()

        return await self._execute(_delete, operation_name="delete_unused_tags")

    async def async_get_tags(self) -> list[Tag]:
        def _query() -> list[Tag]:
            query = TagRecord.select().order_by(TagRecord.label, TagRecord.id)
            return [Tag(id=r.id, label=r.label, slug=r.slug) for r in query]

        return await self._execute(_query, operation_name="get_tags", read_only=True)

    async def async_get_tags_for_entry(self, entry_id: int) -> list[Tag]:
        def _query() -> list[Tag]:
            query = (
                TagRecord.select()
                .join(TagLink)
                .where(TagLink.entry == entry_id)
                .order_by(TagRecord.label, TagRecord.id)
            )
            return [Tag(id=r.id, label=r.label, slug=r.slug) for r in query]

        return await self._execute(_query, operation_name="get_tags_for_entry", read_only=True)

    # ------------------------------------------------------------------
    # Sync watermark
    # ------------------------------------------------------------------

    async def async_get_last_sync(self) -> datetime:
        def _query() -> datetime:
            return SyncState.get_by_id(SYNC_STATE_ID).last_sync

        return await self._execute(_query, operation_name="get_last_sync", read_only=True)

    async def async_touch_last_sync(self, at: datetime | None = None) -> datetime:
        """Advance the watermark to ``at`` (default: now).

        The stored value never moves backwards.

        Returns:
            The watermark after the update
        """

        def _touch() -> datetime:
            with database_proxy.atomic():
                state = SyncState.get_by_id(SYNC_STATE_ID)
                candidate = ensure_utc(at) if at else utc_now()
                if candidate > state.last_sync:
                    SyncState.update(last_sync=candidate).where(
                        SyncState.id == SYNC_STATE_ID
                    ).execute()
                    return candidate
                return state.last_sync

        return await self._execute(_touch, operation_name="touch_last_sync")
