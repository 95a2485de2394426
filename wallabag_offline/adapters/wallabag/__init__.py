"""wallabag integration adapter for offline synchronization."""

from wallabag_offline.adapters.wallabag.client import WallabagClient
from wallabag_offline.adapters.wallabag.sync.service import WallabagSyncService

__all__ = ["WallabagClient", "WallabagSyncService"]
