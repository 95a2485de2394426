"""Push local edits the pull phase did not already reconcile."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime

    from wallabag_offline.adapters.wallabag.sync.protocols import LocalStoreRepository
    from wallabag_offline.adapters.wallabag.sync.reconciler import EntityReconciler


class LocalChangePusher:
    """Pushes entries and annotations edited locally since the last sync.

    Anything the pull phase already saw was resolved there and is skipped.
    A 404 here (entity deleted on the server) aborts the run like any other
    remote error; ``full_sync`` removes such entities before this phase.
    """

    async def push(
        self,
        repository: LocalStoreRepository,
        reconciler: EntityReconciler,
        *,
        since: datetime,
    ) -> None:
        for entry in await repository.async_get_entries_since(since):
            if entry.id not in reconciler.seen_entry_ids:
                await reconciler.push_entry(entry)

        for entry_id, annotation in await repository.async_get_annotations_since(since):
            if annotation.id not in reconciler.seen_annotation_ids:
                await reconciler.push_annotation(entry_id, annotation)
