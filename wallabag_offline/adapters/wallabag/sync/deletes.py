"""Push locally recorded deletions to the server."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from wallabag_offline.adapters.wallabag.client import NotFoundError

if TYPE_CHECKING:
    from wallabag_offline.adapters.wallabag.models import SyncResult
    from wallabag_offline.adapters.wallabag.sync.protocols import (
        LocalStoreRepository,
        WallabagClientProtocol,
    )

logger = logging.getLogger(__name__)


class PendingDeletePusher:
    """Confirms queued deletes remotely, annotations before entries.

    A queued delete is removed only after the server accepted it. A 404 means
    the entity is already gone, so the record is dropped as well.
    """

    async def push(
        self,
        client: WallabagClientProtocol,
        repository: LocalStoreRepository,
        result: SyncResult,
    ) -> None:
        for annotation_id in await repository.async_get_annotation_deletes():
            try:
                await client.delete_annotation(annotation_id)
            except NotFoundError:
                logger.warning(
                    "wallabag_annotation_already_deleted",
                    extra={"annotation_id": annotation_id},
                )
            await repository.async_remove_delete_annotation(annotation_id)
            result.remote_annotation_deletes += 1

        for entry_id in await repository.async_get_entry_deletes():
            try:
                await client.delete_entry(entry_id)
            except NotFoundError:
                logger.warning("wallabag_entry_already_deleted", extra={"entry_id": entry_id})
            await repository.async_remove_delete_entry(entry_id)
            result.remote_entry_deletes += 1
