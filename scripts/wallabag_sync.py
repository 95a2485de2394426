#!/usr/bin/env python3
"""Cron-triggered wallabag sync script.

Run this script via cron to keep the offline cache in step with the server.

Example crontab entry (every 30 minutes):
    */30 * * * * cd /home/user/wallabag-offline && .venv/bin/python scripts/wallabag_sync.py >> /var/log/wallabag_sync.log 2>&1

Usage:
    python scripts/wallabag_sync.py [--full] [--init | --reset] [--add-url URL [--online]] [--tags]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

logger = logging.getLogger("wallabag_sync")

EXIT_OK = 0
EXIT_SYNC_FAILED = 1
EXIT_CONFIG_ERROR = 2


async def run_sync(args: argparse.Namespace) -> int:
    """Run the requested wallabag commands.

    Args:
        args: Parsed command line arguments

    Returns:
        Exit code (0 for success, 1 for a failed command, 2 for bad configuration)
    """
    from wallabag_offline.adapters.wallabag import WallabagSyncService
    from wallabag_offline.config import load_config
    from wallabag_offline.core.logging_utils import setup_json_logging
    from wallabag_offline.db.session import DatabaseSessionManager
    from wallabag_offline.domain.exceptions.domain_exceptions import DomainException
    from wallabag_offline.infrastructure.persistence.sqlite.repositories.local_store_repository import (
        SqliteLocalStoreRepositoryAdapter,
    )

    runtime_overrides = {}
    if args.db_path:
        runtime_overrides["db_path"] = args.db_path
    if args.log_level:
        runtime_overrides["log_level"] = args.log_level

    try:
        cfg = load_config(runtime=runtime_overrides) if runtime_overrides else load_config()
    except RuntimeError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_json_logging(
        cfg.runtime.log_level,
        use_loguru=cfg.runtime.use_loguru,
        log_file=cfg.runtime.log_file,
    )

    db = DatabaseSessionManager(
        cfg.runtime.db_path,
        operation_timeout=cfg.database.operation_timeout,
        max_retries=cfg.database.max_retries,
    )

    try:
        if args.init:
            db.init()
            print(f"Initialized empty store at {cfg.runtime.db_path}")
        elif args.reset:
            db.reset()
            print(f"Reset store at {cfg.runtime.db_path}")
        else:
            db.migrate()

        repository = SqliteLocalStoreRepositoryAdapter(db)
        service = WallabagSyncService(cfg.wallabag, repository)

        if args.tags:
            for tag in await service.tags():
                print(f"{tag.id}\t{tag.slug}\t{tag.label}")
            return EXIT_OK

        if args.add_url and not args.online:
            local_id = await service.add_url(args.add_url)
            print(f"Queued {args.add_url} (pending #{local_id}); it is saved on the next sync")
            return EXIT_OK

        if (args.init or args.reset) and not args.add_url:
            return EXIT_OK

        missing = cfg.wallabag.missing_fields()
        if missing:
            logger.error("wallabag_credentials_missing", extra={"missing": missing})
            print(f"Missing wallabag settings: {', '.join(missing)}", file=sys.stderr)
            return EXIT_CONFIG_ERROR

        if args.add_url:
            entry = await service.add_url_online(args.add_url)
            print(f"Saved entry #{entry.id}: {entry.title or entry.url}")
            return EXIT_OK

        result = await (service.full_sync() if args.full else service.sync())

        print(f"\n=== wallabag {result.mode} sync ===")
        print(
            f"Entries: {result.entries_pulled} pulled, {result.entries_pushed} pushed, "
            f"{result.entries_created} created, {result.entries_unchanged} unchanged"
        )
        print(
            f"Annotations: {result.annotations_pulled} pulled, "
            f"{result.annotations_pushed} pushed, {result.annotations_created} created"
        )
        print(
            f"Deletes: {result.remote_entry_deletes} entries and "
            f"{result.remote_annotation_deletes} annotations pushed, "
            f"{result.local_entry_deletes} entries and "
            f"{result.local_annotation_deletes} annotations removed locally"
        )
        print(f"Tags purged: {result.tags_purged}")
        print(f"Duration: {result.duration_seconds:.1f}s")
        return EXIT_OK

    except DomainException as e:
        logger.error("wallabag_command_failed", extra={"error": str(e), "details": e.details})
        print(f"\nERROR: {e}", file=sys.stderr)
        return EXIT_SYNC_FAILED
    except Exception as e:
        logger.exception("wallabag_sync_failed")
        print(f"\nERROR: {e}", file=sys.stderr)
        return EXIT_SYNC_FAILED
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync an offline cache with a wallabag server")
    lifecycle = parser.add_mutually_exclusive_group()
    lifecycle.add_argument(
        "--init",
        action="store_true",
        help="Create a new store (fails if the database file already exists)",
    )
    lifecycle.add_argument(
        "--reset",
        action="store_true",
        help="Delete the store and start over with an empty one",
    )
    parser.add_argument(
        "--full",
        action="store_true",
        help="Run a full sync, which also detects entries deleted on the server",
    )
    parser.add_argument(
        "--add-url",
        metavar="URL",
        default=None,
        help="Queue a URL to be saved on the next sync",
    )
    parser.add_argument(
        "--online",
        action="store_true",
        help="With --add-url, save the URL on the server immediately",
    )
    parser.add_argument(
        "--tags",
        action="store_true",
        help="List locally cached tags and exit",
    )
    parser.add_argument("--db-path", default=None, help="Override DB_PATH")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override LOG_LEVEL",
    )
    return parser


def main() -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if args.online and not args.add_url:
        parser.error("--online requires --add-url")

    exit_code = asyncio.run(run_sync(args))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
