"""Database session management for the local cache.

This module provides the DatabaseSessionManager class, which owns the SQLite
database file. It handles:
- Connection management with SQLite (WAL, foreign keys on)
- Store lifecycle: first-time ``init``, destructive ``reset``, idempotent ``migrate``
- Async operation wrappers with timeout and retry logic
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import peewee
from playhouse.sqlite_ext import SqliteExtDatabase

from wallabag_offline.core.time_utils import EPOCH
from wallabag_offline.db.models import ALL_MODELS, SYNC_STATE_ID, SyncState, database_proxy
from wallabag_offline.domain.exceptions.domain_exceptions import StoreExistsError

# Default database operation constants
DB_OPERATION_TIMEOUT = 30.0
DB_MAX_RETRIES = 3

_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


class RowSqliteDatabase(SqliteExtDatabase):
    """SQLite database subclass that configures the row factory for dict-like access."""

    def _connect(self) -> sqlite3.Connection:
        conn = super()._connect()
        conn.row_factory = sqlite3.Row
        return conn


@dataclass
class DatabaseSessionManager:
    """Peewee-backed database session manager.

    Attributes:
        path: Path to the SQLite database file
        operation_timeout: Default timeout for database operations in seconds
        max_retries: Maximum retries when the database is locked or busy
    """

    path: str
    operation_timeout: float = field(default=DB_OPERATION_TIMEOUT)
    max_retries: int = field(default=DB_MAX_RETRIES)
    _logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))
    _database: peewee.SqliteDatabase = field(init=False)
    _write_lock: asyncio.Lock = field(init=False)

    def __post_init__(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        self._database = RowSqliteDatabase(
            self.path,
            pragmas={
                "journal_mode": "wal",
                "synchronous": "normal",
                "foreign_keys": 1,
            },
            check_same_thread=False,
        )
        database_proxy.initialize(self._database)

        # One writer at a time; WAL lets readers proceed alongside it.
        self._write_lock = asyncio.Lock()

    @property
    def database(self) -> peewee.SqliteDatabase:
        """Access the underlying Peewee database instance."""
        return self._database

    def connection_context(self) -> Any:
        """Return a connection context manager."""
        return self._database.connection_context()

    def exists(self) -> bool:
        return Path(self.path).exists()

    def init(self) -> None:
        """Create the store for the first time.

        Raises:
            StoreExistsError: If the database file is already present
        """
        if self.exists():
            msg = f"Database already exists at {self.path}; use reset to recreate it"
            raise StoreExistsError(msg, details={"path": self.path})
        self.migrate()
        self._logger.info("db_initialized", extra={"path": self.path})

    def reset(self) -> None:
        """Delete the database file and create a fresh, empty store."""
        self.close()
        db_path = Path(self.path)
        for candidate in (db_path, *(Path(f"{self.path}{s}") for s in _SIDECAR_SUFFIXES)):
            candidate.unlink(missing_ok=True)
        self.migrate()
        self._logger.warning("db_reset", extra={"path": self.path})

    def migrate(self) -> None:
        """Create missing tables and seed the sync state row."""
        with self._database.connection_context(), self._database.bind_ctx(ALL_MODELS):
            self._database.create_tables(ALL_MODELS, safe=True)
            SyncState.insert(id=SYNC_STATE_ID, last_sync=EPOCH).on_conflict_ignore().execute()
        self._logger.debug("db_migrated", extra={"path": self.path})

    def close(self) -> None:
        if not self._database.is_closed():
            self._database.close()

    async def _safe_db_operation(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "database_operation",
        read_only: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Execute database operation with timeout, retry, and connection protection.

        Args:
            operation: The database operation to execute
            *args: Positional arguments for the operation
            timeout: Timeout in seconds (default: self.operation_timeout)
            operation_name: Name for logging purposes
            read_only: Whether this is a read-only operation (skips the write lock)
            **kwargs: Keyword arguments for the operation

        Returns:
            Result of the operation

        Raises:
            TimeoutError: If operation times out
            peewee.OperationalError: If database is locked or busy after retries
            peewee.IntegrityError: If constraint violation occurs
        """
        if timeout is None:
            timeout = self.operation_timeout

        retries = 0

        while True:
            try:

                async def _run_with_lock() -> Any:
                    def _op_wrapper() -> Any:
                        with self._database.connection_context():
                            return operation(*args, **kwargs)

                    if read_only:
                        return await asyncio.to_thread(_op_wrapper)

                    async with self._write_lock:
                        return await asyncio.to_thread(_op_wrapper)

                return await asyncio.wait_for(_run_with_lock(), timeout=timeout)

            except TimeoutError:
                self._logger.exception(
                    "db_operation_timeout",
                    extra={
                        "operation": operation_name,
                        "timeout": timeout,
                        "retries": retries,
                    },
                )
                raise

            except peewee.OperationalError as e:
                error_msg = str(e).lower()

                if ("locked" in error_msg or "busy" in error_msg) and retries < self.max_retries:
                    retries += 1
                    wait_time = 0.1 * (2**retries)
                    self._logger.warning(
                        "db_locked_retrying",
                        extra={
                            "operation": operation_name,
                            "retry": retries,
                            "max_retries": self.max_retries,
                            "wait_time": wait_time,
                            "error": str(e),
                        },
                    )
                    await asyncio.sleep(wait_time)
                    continue

                self._logger.exception(
                    "db_operational_error",
                    extra={
                        "operation": operation_name,
                        "retries": retries,
                        "error": str(e),
                    },
                )
                raise

            except peewee.IntegrityError as e:
                self._logger.exception(
                    "db_integrity_error",
                    extra={
                        "operation": operation_name,
                        "error": str(e),
                    },
                )
                raise
