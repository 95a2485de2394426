"""Pull remote changes into the local store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wallabag_offline.adapters.wallabag.models import EntriesFilter
from wallabag_offline.adapters.wallabag.sync.constants import ENTRIES_PAGE_SIZE

if TYPE_CHECKING:
    from datetime import datetime

    from wallabag_offline.adapters.wallabag.models import SyncResult
    from wallabag_offline.adapters.wallabag.sync.protocols import (
        LocalStoreRepository,
        WallabagClientProtocol,
    )
    from wallabag_offline.adapters.wallabag.sync.reconciler import EntityReconciler

logger = logging.getLogger(__name__)


class RemoteChangePuller:
    """Fetches entries from the server and reconciles each one."""

    async def pull_incremental(
        self,
        client: WallabagClientProtocol,
        reconciler: EntityReconciler,
        *,
        since: datetime,
    ) -> None:
        """Reconcile entries the server changed at or after ``since``."""
        entries = await client.get_entries(
            EntriesFilter.updated_since(since, per_page=ENTRIES_PAGE_SIZE)
        )
        for entry in entries:
            await reconciler.sync_entry(entry)

    async def pull_full(
        self,
        client: WallabagClientProtocol,
        reconciler: EntityReconciler,
        repository: LocalStoreRepository,
        result: SyncResult,
    ) -> None:
        """Reconcile every remote entry, then drop what the server no longer has."""
        entries = await client.get_entries(EntriesFilter(per_page=ENTRIES_PAGE_SIZE))

        remote_entry_ids: set[int] = set()
        remote_annotation_ids: set[int] = set()
        for entry in entries:
            if entry.annotations is None:
                annotations = await client.get_annotations(entry.id)
                entry = entry.model_copy(update={"annotations": annotations})
            remote_entry_ids.add(entry.id)
            remote_annotation_ids.update(a.id for a in entry.annotations or ())
            await reconciler.sync_entry(entry)

        for entry_id in sorted(await repository.async_get_all_entry_ids() - remote_entry_ids):
            await repository.async_delete_entry(entry_id)
            result.local_entry_deletes += 1
            logger.info("wallabag_entry_removed_remotely", extra={"entry_id": entry_id})

        local_annotation_ids = await repository.async_get_all_annotation_ids()
        for annotation_id in sorted(local_annotation_ids - remote_annotation_ids):
            await repository.async_delete_annotation(annotation_id)
            result.local_annotation_deletes += 1
            logger.info(
                "wallabag_annotation_removed_remotely", extra={"annotation_id": annotation_id}
            )
