"""Constants for wallabag synchronization."""

SYNC_MODE_INCREMENTAL = "incremental"
SYNC_MODE_FULL = "full"
SYNC_MODE_ADD_URL = "add_url"

# Listing page size; the server default (30) makes full syncs chatty.
ENTRIES_PAGE_SIZE = 100
