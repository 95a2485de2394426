"""Create entities that were added while offline."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wallabag_offline.adapters.wallabag.models import NewEntry

if TYPE_CHECKING:
    from wallabag_offline.adapters.wallabag.models import SyncResult
    from wallabag_offline.adapters.wallabag.sync.protocols import (
        LocalStoreRepository,
        WallabagClientProtocol,
    )
    from wallabag_offline.adapters.wallabag.sync.reconciler import EntityReconciler

logger = logging.getLogger(__name__)


class PendingCreatePusher:
    """Drains the new-url and new-annotation queues.

    Each queued record is removed only once the server returned the created
    entity and it has been stored locally.
    """

    async def push(
        self,
        client: WallabagClientProtocol,
        repository: LocalStoreRepository,
        reconciler: EntityReconciler,
        result: SyncResult,
    ) -> None:
        for local_id, url in await repository.async_get_new_urls():
            entry = await client.create_entry(NewEntry(url=url))
            await reconciler.pull_entry(entry)
            await repository.async_remove_new_url(local_id)
            result.entries_created += 1
            logger.debug(
                "wallabag_pending_url_created",
                extra={"local_id": local_id, "entry_id": entry.id},
            )

        for entry_id, local_id, payload in await repository.async_get_new_annotations():
            annotation = await client.create_annotation(entry_id, payload)
            await repository.async_save_annotation(annotation, entry_id)
            await repository.async_remove_new_annotation(local_id)
            result.annotations_created += 1
            logger.debug(
                "wallabag_pending_annotation_created",
                extra={"local_id": local_id, "annotation_id": annotation.id},
            )
