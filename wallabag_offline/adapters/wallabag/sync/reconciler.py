"""Apply conflict resolution decisions to the store and the server."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wallabag_offline.adapters.wallabag.models import PatchEntry
from wallabag_offline.adapters.wallabag.sync.resolver import Resolution, resolve

if TYPE_CHECKING:
    from wallabag_offline.adapters.wallabag.models import SyncResult
    from wallabag_offline.adapters.wallabag.sync.protocols import (
        LocalStoreRepository,
        WallabagClientProtocol,
    )
    from wallabag_offline.domain.models import Annotation, Entry

logger = logging.getLogger(__name__)


class EntityReconciler:
    """Reconciles remote entries and annotations against the local store for one run.

    Tracks which ids were handled so later phases do not push them again.
    """

    def __init__(
        self,
        client: WallabagClientProtocol,
        repository: LocalStoreRepository,
        result: SyncResult,
    ) -> None:
        self._client = client
        self._repository = repository
        self._result = result
        self.seen_entry_ids: set[int] = set()
        self.seen_annotation_ids: set[int] = set()

    async def sync_entry(self, remote: Entry) -> Resolution:
        local = await self._repository.async_get_entry(remote.id)
        resolution = resolve(local, remote)

        if local is None or resolution is Resolution.PULL:
            await self.pull_entry(remote)
            self._result.entries_pulled += 1
        elif resolution is Resolution.PUSH:
            await self.push_entry(local)
        else:
            self.seen_entry_ids.add(remote.id)
            self._result.entries_unchanged += 1
            # Annotation edits do not bump the entry's updated_at.
            for annotation in remote.annotations or ():
                await self.sync_annotation(remote.id, annotation)

        logger.debug(
            "wallabag_entry_reconciled",
            extra={"entry_id": remote.id, "resolution": resolution.value},
        )
        return resolution

    async def pull_entry(self, entry: Entry) -> None:
        """Store a server version of an entry, then reconcile its embedded annotations."""
        await self._repository.async_save_entry(entry)
        self.seen_entry_ids.add(entry.id)
        for annotation in entry.annotations or ():
            await self.sync_annotation(entry.id, annotation)

    async def push_entry(self, local: Entry) -> Entry:
        """Send the local entry and store the server's canonical answer."""
        updated = await self._client.update_entry(local.id, PatchEntry.from_entry(local))
        await self.pull_entry(updated)
        self._result.entries_pushed += 1
        logger.info("wallabag_entry_pushed", extra={"entry_id": local.id})
        return updated

    async def sync_annotation(self, entry_id: int, remote: Annotation) -> Resolution:
        local = await self._repository.async_get_annotation(remote.id)
        resolution = resolve(local, remote)

        if local is None or resolution is Resolution.PULL:
            await self._repository.async_save_annotation(remote, entry_id)
            self._result.annotations_pulled += 1
        elif resolution is Resolution.PUSH:
            await self.push_annotation(entry_id, local)
        else:
            self._result.annotations_unchanged += 1

        self.seen_annotation_ids.add(remote.id)
        return resolution

    async def push_annotation(self, entry_id: int, local: Annotation) -> Annotation:
        updated = await self._client.update_annotation(local)
        await self._repository.async_save_annotation(updated, entry_id)
        self.seen_annotation_ids.add(updated.id)
        self._result.annotations_pushed += 1
        logger.info(
            "wallabag_annotation_pushed",
            extra={"entry_id": entry_id, "annotation_id": local.id},
        )
        return updated
