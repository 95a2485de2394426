"""End-to-end tests for WallabagSyncService.

A real SQLite store is reconciled against ``FakeWallabagServer``, an
in-memory stand-in for the API that implements the client protocol and
records every call.
"""

from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timedelta
from typing import Any

import pytest

from tests.conftest import (
    at,
    make_annotation,
    make_entry,
    make_tag,
    make_wallabag_config,
    static_client_factory,
)
from wallabag_offline.adapters.wallabag.client import NotFoundError, WallabagRetryableError
from wallabag_offline.adapters.wallabag.sync.service import WallabagSyncService
from wallabag_offline.core.time_utils import EPOCH, to_epoch_seconds, utc_now
from wallabag_offline.domain.exceptions.domain_exceptions import InvalidUrlError
from wallabag_offline.domain.models import Annotation, Entry, NewAnnotation, Tag


class FakeWallabagServer:
    """In-memory wallabag account speaking the client protocol."""

    def __init__(self, *, embed_annotations: bool = True, wall_clock: bool = False) -> None:
        self.embed_annotations = embed_annotations
        self.wall_clock = wall_clock
        self.entries: dict[int, Entry] = {}
        self.annotations: dict[int, tuple[int, Annotation]] = {}
        self.calls: list[tuple[str, Any]] = []
        self.failures: dict[str, Exception] = {}
        self.now = utc_now() if wall_clock else at(100)
        self._ids = itertools.count(1000)
        self._active = 0
        self.max_active = 0

    # Test helpers -----------------------------------------------------

    def put_entry(self, entry: Entry, annotations: list[Annotation] | None = None) -> None:
        self.entries[entry.id] = entry.model_copy(update={"annotations": None})
        for annotation in annotations or ():
            self.annotations[annotation.id] = (entry.id, annotation)

    def _tick(self) -> datetime:
        if self.wall_clock:
            self.now = max(utc_now(), self.now + timedelta(microseconds=1))
        else:
            self.now += timedelta(seconds=1)
        return self.now

    def _record(self, name: str, arg: Any) -> None:
        self.calls.append((name, arg))
        if name in self.failures:
            raise self.failures[name]

    def _annotations_of(self, entry_id: int) -> list[Annotation]:
        return [a for owner, a in self.annotations.values() if owner == entry_id]

    def _with_annotations(self, entry: Entry) -> Entry:
        return entry.model_copy(update={"annotations": self._annotations_of(entry.id)})

    def _tags_for(self, labels: list[str]) -> list[Tag]:
        known = {t.label: t for e in self.entries.values() for t in e.tags}
        tags = []
        for label in labels:
            tags.append(known.get(label) or Tag(id=next(self._ids), label=label, slug=label))
        return tags

    # Protocol ---------------------------------------------------------

    async def get_entries(self, entries_filter: Any = None) -> list[Entry]:
        self._active += 1
        self.max_active = max(self.max_active, self._active)
        try:
            await asyncio.sleep(0)
            self._record("get_entries", entries_filter)
            since = entries_filter.since if entries_filter else 0
            matching = [
                e for e in self.entries.values() if to_epoch_seconds(e.updated_at) >= since
            ]
            if self.embed_annotations:
                return [self._with_annotations(e) for e in matching]
            return matching
        finally:
            self._active -= 1

    async def get_entry(self, entry_id: int) -> Entry:
        self._record("get_entry", entry_id)
        if entry_id not in self.entries:
            raise NotFoundError("Not Found")
        return self._with_annotations(self.entries[entry_id])

    async def create_entry(self, new_entry: Any) -> Entry:
        self._record("create_entry", new_entry.url)
        entry_id = next(self._ids)
        created = make_entry(
            entry_id,
            self._tick(),
            url=new_entry.url,
            title=f"Fetched {new_entry.url}",
            tags=self._tags_for(new_entry.tags or []),
        )
        self.entries[entry_id] = created
        return self._with_annotations(created)

    async def update_entry(self, entry_id: int, patch: Any) -> Entry:
        self._record("update_entry", entry_id)
        if entry_id not in self.entries:
            raise NotFoundError("Not Found")
        changes: dict[str, Any] = {
            "title": patch.title,
            "is_archived": bool(patch.archive),
            "is_starred": bool(patch.starred),
            "updated_at": self._tick(),
        }
        if patch.tags is not None:
            changes["tags"] = self._tags_for(patch.tags)
        self.entries[entry_id] = self.entries[entry_id].model_copy(update=changes)
        return self._with_annotations(self.entries[entry_id])

    async def delete_entry(self, entry_id: int) -> Entry:
        self._record("delete_entry", entry_id)
        if entry_id not in self.entries:
            raise NotFoundError("Not Found")
        for annotation in self._annotations_of(entry_id):
            del self.annotations[annotation.id]
        return self.entries.pop(entry_id)

    async def get_annotations(self, entry_id: int) -> list[Annotation]:
        self._record("get_annotations", entry_id)
        return self._annotations_of(entry_id)

    async def create_annotation(self, entry_id: int, annotation: NewAnnotation) -> Annotation:
        self._record("create_annotation", entry_id)
        now = self._tick()
        created = Annotation(
            id=next(self._ids),
            created_at=now,
            updated_at=now,
            quote=annotation.quote,
            ranges=annotation.ranges,
            text=annotation.text,
            user="alice",
        )
        self.annotations[created.id] = (entry_id, created)
        return created

    async def update_annotation(self, annotation: Annotation) -> Annotation:
        self._record("update_annotation", annotation.id)
        if annotation.id not in self.annotations:
            raise NotFoundError("Not Found")
        entry_id, _ = self.annotations[annotation.id]
        updated = annotation.model_copy(update={"updated_at": self._tick()})
        self.annotations[annotation.id] = (entry_id, updated)
        return updated

    async def delete_annotation(self, annotation_id: int) -> Annotation:
        self._record("delete_annotation", annotation_id)
        if annotation_id not in self.annotations:
            raise NotFoundError("Not Found")
        return self.annotations.pop(annotation_id)[1]


def _service(store: Any, server: FakeWallabagServer) -> WallabagSyncService:
    return WallabagSyncService(
        make_wallabag_config(), store, client_factory=static_client_factory(server)
    )


def _call_names(server: FakeWallabagServer) -> list[str]:
    return [name for name, _ in server.calls]


# ---------------------------------------------------------------------------
# Pull
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_sync_pulls_everything(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0), tags=[make_tag(1, "python")]), [make_annotation(5)])
    server.put_entry(make_entry(2, at(1)))

    before = utc_now()
    result = await _service(store, server).sync()

    assert await store.async_get_all_entry_ids() == {1, 2}
    assert (await store.async_get_annotation(5)).text == "note 5"
    assert [t.label for t in await store.async_get_tags()] == ["python"]
    assert result.entries_pulled == 2
    assert result.annotations_pulled == 1
    assert result.mode == "incremental"
    assert result.correlation_id
    assert before <= result.started_at
    assert await store.async_get_last_sync() == result.synced_at


@pytest.mark.asyncio
async def test_second_sync_only_asks_for_newer_changes(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))
    service = _service(store, server)

    first = await service.sync()
    second = await service.sync()

    assert second.changes == 0
    assert server.calls[-1][1].since == to_epoch_seconds(first.synced_at)


@pytest.mark.asyncio
async def test_remote_newer_entry_overwrites_local(store):
    await store.async_save_entry(make_entry(1, at(0), title="old"))
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(5), title="new"))

    result = await _service(store, server).sync()

    assert (await store.async_get_entry(1)).title == "new"
    assert result.entries_pulled == 1
    assert "update_entry" not in _call_names(server)


@pytest.mark.asyncio
async def test_unchanged_entry_still_reconciles_its_annotations(store):
    """Editing an annotation does not bump the entry's updated_at."""
    await store.async_save_entry(make_entry(1, at(0)))
    await store.async_save_annotation(make_annotation(5, at(0), text="before"), 1)
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)), [make_annotation(5, at(3), text="after")])

    result = await _service(store, server).sync()

    assert result.entries_unchanged == 1
    assert result.annotations_pulled == 1
    assert (await store.async_get_annotation(5)).text == "after"


@pytest.mark.asyncio
async def test_remote_tag_removal_purges_orphaned_tags(store):
    await store.async_save_entry(make_entry(1, at(0), tags=[make_tag(1, "stale")]))
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(5), tags=[]))

    result = await _service(store, server).sync()

    assert result.tags_purged == 1
    assert await store.async_get_tags() == []


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_local_newer_entry_is_pushed(store):
    await store.async_save_entry(make_entry(1, at(10), title="local", tags=[make_tag(3, "x")]))
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0), title="remote", tags=[make_tag(3, "x")]))

    result = await _service(store, server).sync()

    assert server.entries[1].title == "local"
    assert result.entries_pushed == 1
    # The server's answer is stored, including its new updated_at.
    stored = await store.async_get_entry(1)
    assert stored.updated_at == server.entries[1].updated_at
    assert _call_names(server).count("update_entry") == 1


@pytest.mark.asyncio
async def test_local_newer_annotation_is_pushed(store):
    await store.async_save_entry(make_entry(1, at(0)))
    await store.async_save_annotation(make_annotation(5, at(9), text="mine"), 1)
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)), [make_annotation(5, at(1), text="theirs")])

    result = await _service(store, server).sync()

    assert server.annotations[5][1].text == "mine"
    assert result.annotations_pushed == 1


@pytest.mark.asyncio
async def test_local_edits_outside_remote_window_are_pushed(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)), [make_annotation(5, at(0))])
    service = _service(store, server)
    await service.sync()

    entry = await store.async_get_entry(1)
    await service.edit_entry_locally(entry.model_copy(update={"title": "edited offline"}))
    annotation = await store.async_get_annotation(5)
    await service.edit_annotation_locally(1, annotation.model_copy(update={"text": "rethought"}))
    server.calls.clear()

    result = await service.sync()

    assert server.entries[1].title == "edited offline"
    assert server.annotations[5][1].text == "rethought"
    assert result.entries_pushed == 1
    assert result.annotations_pushed == 1
    assert _call_names(server).count("update_entry") == 1


@pytest.mark.asyncio
async def test_entry_seen_during_pull_is_not_pushed_again(store):
    await store.async_save_entry(make_entry(1, at(10), title="local"))
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))

    await _service(store, server).sync()

    assert _call_names(server).count("update_entry") == 1


# ---------------------------------------------------------------------------
# Pending creates and deletes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_offline_url_is_created_on_next_sync(store):
    server = FakeWallabagServer()
    service = _service(store, server)
    await service.add_url("https://example.com/read-later")

    result = await service.sync()

    assert await store.async_get_new_urls() == []
    assert result.entries_created == 1
    created = [e for e in await store.async_get_all_entries() if e.id >= 1000]
    assert [e.url for e in created] == ["https://example.com/read-later"]
    assert ("create_entry", "https://example.com/read-later") in server.calls


@pytest.mark.asyncio
async def test_offline_annotation_is_created_on_next_sync(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))
    service = _service(store, server)
    await service.sync()
    await service.add_annotation_locally(1, NewAnnotation(quote="q", text="offline note"))

    result = await service.sync()

    assert await store.async_get_new_annotations() == []
    assert result.annotations_created == 1
    stored = await store.async_get_annotations_for_entry(1)
    assert [a.text for a in stored] == ["offline note"]
    assert stored[0].id in server.annotations


async def _sync_with_created_annotation(store: Any, server: FakeWallabagServer):
    server.put_entry(make_entry(1, at(0)))
    service = _service(store, server)
    await service.sync()
    await service.add_annotation_locally(1, NewAnnotation(text="offline note"))
    await service.sync()
    [annotation] = await store.async_get_annotations_for_entry(1)
    return service, annotation.id


@pytest.mark.asyncio
async def test_idle_syncs_do_not_push_server_stamped_annotations(store):
    server = FakeWallabagServer(wall_clock=True)
    service, _ = await _sync_with_created_annotation(store, server)
    server.calls.clear()

    pushed = [(await service.sync()).annotations_pushed for _ in range(3)]

    assert pushed == [0, 0, 0]
    assert "update_annotation" not in _call_names(server)


@pytest.mark.asyncio
async def test_server_annotation_edit_after_sync_is_not_overwritten(store):
    server = FakeWallabagServer(wall_clock=True)
    service, annotation_id = await _sync_with_created_annotation(store, server)
    watermark = await store.async_get_last_sync()
    entry_id, created = server.annotations[annotation_id]
    server.annotations[annotation_id] = (
        entry_id,
        created.model_copy(
            update={"text": "web edit", "updated_at": watermark + timedelta(seconds=1)}
        ),
    )

    await service.sync()

    assert server.annotations[annotation_id][1].text == "web edit"
    assert "update_annotation" not in _call_names(server)

    # Annotation edits do not touch the entry, so only a full sync brings it down.
    await service.full_sync()

    assert (await store.async_get_annotation(annotation_id)).text == "web edit"


@pytest.mark.asyncio
async def test_watermark_is_committed_after_the_run(store):
    server = FakeWallabagServer(wall_clock=True)
    service = _service(store, server)
    await service.add_url("https://example.com/late")

    result = await service.sync()

    created = next(e for e in server.entries.values() if e.url == "https://example.com/late")
    assert result.started_at <= created.updated_at <= result.synced_at
    assert await store.async_get_last_sync() == result.synced_at


@pytest.mark.asyncio
async def test_local_deletes_are_pushed_annotations_first(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)), [make_annotation(5)])
    server.put_entry(make_entry(2, at(0)), [make_annotation(6)])
    service = _service(store, server)
    await service.sync()

    await service.delete_annotation_locally(6)
    await service.delete_entry_locally(1)
    server.calls.clear()
    result = await service.sync()

    deletes = [c for c in server.calls if c[0].startswith("delete_")]
    assert deletes == [("delete_annotation", 6), ("delete_entry", 1)]
    assert set(server.entries) == {2}
    assert server.annotations == {}
    assert await store.async_get_entry_deletes() == []
    assert await store.async_get_annotation_deletes() == []
    assert result.remote_entry_deletes == 1
    assert result.remote_annotation_deletes == 1


@pytest.mark.asyncio
async def test_delete_of_missing_remote_entity_counts_as_done(store):
    await store.async_queue_entry_delete(77)
    await store.async_queue_annotation_delete(88)
    server = FakeWallabagServer()

    result = await _service(store, server).sync()

    assert await store.async_get_entry_deletes() == []
    assert await store.async_get_annotation_deletes() == []
    assert result.remote_entry_deletes == 1
    assert await store.async_get_last_sync() == result.synced_at


# ---------------------------------------------------------------------------
# Failure semantics
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failed_create_keeps_queue_and_watermark(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))
    server.failures["create_entry"] = WallabagRetryableError("server down", status_code=503)
    service = _service(store, server)
    await service.add_url("https://example.com/later")

    with pytest.raises(WallabagRetryableError):
        await service.sync()

    assert [url for _, url in await store.async_get_new_urls()] == ["https://example.com/later"]
    assert await store.async_get_last_sync() == EPOCH
    # Phases that completed before the failure stay committed.
    assert await store.async_get_entry(1) is not None

    del server.failures["create_entry"]
    result = await service.sync()

    assert await store.async_get_new_urls() == []
    assert result.entries_created == 1
    assert await store.async_get_last_sync() == result.synced_at


@pytest.mark.asyncio
async def test_failed_delete_keeps_pending_record(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))
    service = _service(store, server)
    await service.sync()
    watermark = await store.async_get_last_sync()
    await service.delete_entry_locally(1)
    server.failures["delete_entry"] = WallabagRetryableError("timeout")

    with pytest.raises(WallabagRetryableError):
        await service.sync()

    assert await store.async_get_entry_deletes() == [1]
    assert await store.async_get_last_sync() == watermark


@pytest.mark.asyncio
async def test_pushing_remotely_deleted_entry_aborts_until_full_sync(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))
    server.put_entry(make_entry(2, at(0)))
    service = _service(store, server)
    await service.sync()
    watermark = await store.async_get_last_sync()

    del server.entries[2]
    await service.edit_entry_locally(await store.async_get_entry(2))

    with pytest.raises(NotFoundError):
        await service.sync()
    assert await store.async_get_last_sync() == watermark

    result = await service.full_sync()

    assert result.local_entry_deletes == 1
    assert await store.async_get_all_entry_ids() == {1}
    assert await store.async_get_last_sync() == result.synced_at


# ---------------------------------------------------------------------------
# Full sync
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_full_sync_removes_what_the_server_deleted(store):
    await store.async_save_entry(make_entry(1, at(0)))
    await store.async_save_entry(make_entry(2, at(0)))
    await store.async_save_annotation(make_annotation(5, at(0)), 1)
    await store.async_save_annotation(make_annotation(6, at(0)), 1)
    await store.async_save_annotation(make_annotation(7, at(0)), 2)
    server = FakeWallabagServer(embed_annotations=False)
    server.put_entry(make_entry(1, at(0)), [make_annotation(5, at(0))])

    result = await _service(store, server).full_sync()

    assert result.mode == "full"
    assert await store.async_get_all_entry_ids() == {1}
    assert await store.async_get_all_annotation_ids() == {5}
    assert result.local_entry_deletes == 1
    assert result.local_annotation_deletes == 1
    assert ("get_annotations", 1) in server.calls
    assert server.calls[0][1].since == 0


@pytest.mark.asyncio
async def test_incremental_sync_leaves_remote_deletions_alone(store):
    await store.async_save_entry(make_entry(1, at(0)))
    await store.async_save_entry(make_entry(2, at(0)))
    await store.async_touch_last_sync(at(1))
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))

    await _service(store, server).sync()

    assert await store.async_get_all_entry_ids() == {1, 2}


@pytest.mark.asyncio
async def test_full_sync_still_pulls_and_pushes(store):
    await store.async_save_entry(make_entry(1, at(10), title="local"))
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))
    server.put_entry(make_entry(2, at(0)))

    result = await _service(store, server).full_sync()

    assert result.entries_pushed == 1
    assert result.entries_pulled == 1
    assert server.entries[1].title == "local"


# ---------------------------------------------------------------------------
# Service helpers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_url_rejects_non_http(store):
    service = _service(store, FakeWallabagServer())

    with pytest.raises(InvalidUrlError):
        await service.add_url("ftp://example.com/file")
    with pytest.raises(InvalidUrlError):
        await service.add_url("   ")

    assert await store.async_get_new_urls() == []


@pytest.mark.asyncio
async def test_add_url_online_stores_created_entry(store):
    server = FakeWallabagServer()
    service = _service(store, server)

    entry = await service.add_url_online(" https://example.com/now ")

    assert entry.url == "https://example.com/now"
    assert await store.async_get_entry(entry.id) is not None
    assert await store.async_get_new_urls() == []
    assert await store.async_get_last_sync() == EPOCH


@pytest.mark.asyncio
async def test_tags_lists_cached_tags(store):
    await store.async_save_entry(make_entry(1, tags=[make_tag(2, "b"), make_tag(1, "a")]))

    tags = await _service(store, FakeWallabagServer()).tags()

    assert [t.label for t in tags] == ["a", "b"]


@pytest.mark.asyncio
async def test_overlapping_syncs_are_serialized(store):
    server = FakeWallabagServer()
    server.put_entry(make_entry(1, at(0)))
    service = _service(store, server)

    first, second = await asyncio.gather(service.sync(), service.sync())

    assert server.max_active == 1
    assert first.entries_pulled + second.entries_pulled == 1
