import asyncio
from typing import Any

import peewee

from wallabag_offline.db.session import DatabaseSessionManager
from wallabag_offline.domain.exceptions.domain_exceptions import StorageError


class SqliteBaseRepository:
    """Base repository for SQLite implementations."""

    def __init__(self, session_manager: DatabaseSessionManager | Any) -> None:
        self._session = session_manager

    async def _execute(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "repository_operation",
        read_only: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Execute a database operation safely using the session manager.

        Peewee, timeout and row decoding failures surface as ``StorageError``.
        """
        try:
            return await self._run(
                operation,
                *args,
                timeout=timeout,
                operation_name=operation_name,
                read_only=read_only,
                **kwargs,
            )
        except (peewee.PeeweeException, TimeoutError, ValueError) as exc:
            msg = f"{operation_name} failed: {exc}"
            raise StorageError(
                msg, details={"operation": operation_name, "error_type": type(exc).__name__}
            ) from exc

    async def _run(
        self,
        operation: Any,
        *args: Any,
        timeout: float | None,
        operation_name: str,
        read_only: bool,
        **kwargs: Any,
    ) -> Any:
        if hasattr(self._session, "_safe_db_operation"):
            return await self._session._safe_db_operation(
                operation,
                *args,
                timeout=timeout,
                operation_name=operation_name,
                read_only=read_only,
                **kwargs,
            )

        if hasattr(self._session, "connection_context"):

            def _op_wrapper() -> Any:
                session_any: Any = self._session
                with session_any.connection_context():
                    return operation(*args, **kwargs)

            return await asyncio.to_thread(_op_wrapper)

        msg = "Unsupported session manager type for repository execution"
        raise TypeError(msg)
