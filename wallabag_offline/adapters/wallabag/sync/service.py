"""Public wallabag sync service composed of small use-case classes."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from wallabag_offline.adapters.wallabag.client import WallabagClient
from wallabag_offline.adapters.wallabag.models import NewEntry, SyncResult
from wallabag_offline.adapters.wallabag.sync.constants import (
    SYNC_MODE_ADD_URL,
    SYNC_MODE_FULL,
    SYNC_MODE_INCREMENTAL,
)
from wallabag_offline.adapters.wallabag.sync.creates import PendingCreatePusher
from wallabag_offline.adapters.wallabag.sync.deletes import PendingDeletePusher
from wallabag_offline.adapters.wallabag.sync.local_push import LocalChangePusher
from wallabag_offline.adapters.wallabag.sync.pull import RemoteChangePuller
from wallabag_offline.adapters.wallabag.sync.reconciler import EntityReconciler
from wallabag_offline.core.logging_utils import generate_correlation_id
from wallabag_offline.core.time_utils import to_iso, utc_now
from wallabag_offline.core.url_utils import validate_url
from wallabag_offline.domain.exceptions.domain_exceptions import InvalidUrlError

if TYPE_CHECKING:
    from wallabag_offline.adapters.wallabag.sync.protocols import (
        LocalStoreRepository,
        WallabagClientFactory,
    )
    from wallabag_offline.config.wallabag import WallabagConfig
    from wallabag_offline.domain.models import Annotation, Entry, NewAnnotation, Tag

logger = logging.getLogger(__name__)


def _checked_url(url: str) -> str:
    try:
        return validate_url(url)
    except ValueError as exc:
        raise InvalidUrlError(str(exc), details={"url": str(url)[:100]}) from exc


class WallabagSyncService:
    """Keeps the local store and the wallabag server in step.

    This is a thin orchestrator. Each phase of a run lives in its own
    collaborator, and the phases always run in this order:

    1. queued deletes (annotations, then entries)
    2. pull (incremental since the watermark, or full with remote-deletion detection)
    3. local edits not seen during the pull
    4. queued creates (urls, then annotations)
    5. orphaned tag cleanup
    6. watermark commit

    A failing step aborts the run and leaves the watermark untouched.
    """

    def __init__(
        self,
        config: WallabagConfig,
        repository: LocalStoreRepository,
        client_factory: WallabagClientFactory | None = None,
    ) -> None:
        self.config = config
        self._repository = repository
        self._client_factory = client_factory or WallabagClient.from_config
        self._run_lock = asyncio.Lock()

        self._deletes = PendingDeletePusher()
        self._puller = RemoteChangePuller()
        self._local_changes = LocalChangePusher()
        self._creates = PendingCreatePusher()

    async def sync(self) -> SyncResult:
        """Incremental sync of everything changed since the last successful run."""
        return await self._run(SYNC_MODE_INCREMENTAL)

    async def full_sync(self) -> SyncResult:
        """Sync against the complete remote set, removing what the server deleted."""
        return await self._run(SYNC_MODE_FULL)

    async def _run(self, mode: str) -> SyncResult:
        async with self._run_lock:
            correlation_id = generate_correlation_id()
            started_at = utc_now()
            start_time = time.monotonic()
            result = SyncResult(mode=mode, correlation_id=correlation_id, started_at=started_at)

            last_sync = await self._repository.async_get_last_sync()
            logger.info(
                "wallabag_sync_started",
                extra={
                    "correlation_id": correlation_id,
                    "mode": mode,
                    "last_sync": to_iso(last_sync),
                },
            )

            try:
                async with self._client_factory(self.config) as client:
                    reconciler = EntityReconciler(client, self._repository, result)
                    await self._deletes.push(client, self._repository, result)
                    if mode == SYNC_MODE_FULL:
                        await self._puller.pull_full(client, reconciler, self._repository, result)
                    else:
                        await self._puller.pull_incremental(client, reconciler, since=last_sync)
                    await self._local_changes.push(self._repository, reconciler, since=last_sync)
                    await self._creates.push(client, self._repository, reconciler, result)

                result.tags_purged = await self._repository.async_delete_unused_tags()
                # After the last phase: everything the server stamped during the run
                # falls below the next window.
                result.synced_at = await self._repository.async_touch_last_sync(utc_now())
            except Exception as exc:
                logger.exception(
                    "wallabag_sync_failed",
                    extra={
                        "correlation_id": correlation_id,
                        "mode": mode,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                raise

            result.duration_seconds = time.monotonic() - start_time
            logger.info(
                "wallabag_sync_complete",
                extra={"correlation_id": correlation_id, "mode": mode, **result.counters()},
            )
            return result

    # ------------------------------------------------------------------
    # Offline and online edits
    # ------------------------------------------------------------------

    async def add_url(self, url: str) -> int:
        """Queue a URL to be saved on the next sync.

        Returns:
            Local queue id

        Raises:
            InvalidUrlError: If the URL is not an http(s) address
        """
        checked = _checked_url(url)
        local_id = await self._repository.async_add_new_url(checked)
        logger.info("wallabag_url_queued", extra={"local_id": local_id, "url": checked[:100]})
        return local_id

    async def add_url_online(self, url: str) -> Entry:
        """Save a URL on the server right away and cache the created entry."""
        checked = _checked_url(url)
        result = SyncResult(mode=SYNC_MODE_ADD_URL)
        async with self._client_factory(self.config) as client:
            entry = await client.create_entry(NewEntry(url=checked))
            await EntityReconciler(client, self._repository, result).pull_entry(entry)
        return entry

    async def tags(self) -> list[Tag]:
        return await self._repository.async_get_tags()

    async def edit_entry_locally(self, entry: Entry) -> Entry:
        """Store a locally modified entry; the next sync pushes it."""
        edited = entry.model_copy(update={"updated_at": utc_now(), "annotations": None})
        await self._repository.async_save_entry(edited)
        return edited

    async def edit_annotation_locally(self, entry_id: int, annotation: Annotation) -> Annotation:
        """Store a locally modified annotation; the next sync pushes it."""
        edited = annotation.model_copy(update={"updated_at": utc_now()})
        await self._repository.async_save_annotation(edited, entry_id)
        return edited

    async def add_annotation_locally(self, entry_id: int, annotation: NewAnnotation) -> int:
        """Queue an annotation to be created on the next sync."""
        return await self._repository.async_add_new_annotation(entry_id, annotation)

    async def delete_entry_locally(self, entry_id: int) -> None:
        """Drop a cached entry and queue its deletion on the server."""
        await self._repository.async_mark_entry_deleted(entry_id)

    async def delete_annotation_locally(self, annotation_id: int) -> None:
        """Drop a cached annotation and queue its deletion on the server."""
        await self._repository.async_mark_annotation_deleted(annotation_id)
