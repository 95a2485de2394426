"""wallabag API client."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from wallabag_offline.adapters.wallabag.models import (
    EntriesFilter,
    EntriesPage,
    NewEntry,
    PatchEntry,
    TokenInfo,
)
from wallabag_offline.core.logging_utils import truncate_log_content
from wallabag_offline.domain.models import Annotation, Entry, NewAnnotation, Tag

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import Self

    from wallabag_offline.config.wallabag import WallabagConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_MAX_DELAY = 30.0  # seconds
DEFAULT_JITTER = 0.1  # 10% jitter

TOKEN_PATH = "/oauth/v2/token"
ENTRIES_PATH = "/api/entries.json"
EXISTS_PATH = "/api/entries/exists.json"
TAGS_PATH = "/api/tags.json"


def _entry_path(entry_id: int) -> str:
    return f"/api/entries/{entry_id}.json"


def _annotation_path(resource_id: int) -> str:
    # Entry id for GET/POST, annotation id for PUT/DELETE.
    return f"/api/annotations/{resource_id}.json"


class WallabagClientError(Exception):
    """Base exception for wallabag client errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WallabagRetryableError(WallabagClientError):
    """Transient failure (timeout, connection, 408/429/5xx)."""


class UnauthorizedError(WallabagClientError):
    """401 that is not an expired token (bad credentials, revoked client)."""

    def __init__(self, message: str, description: str | None = None) -> None:
        super().__init__(message, status_code=401)
        self.description = description


class ExpiredTokenError(UnauthorizedError):
    """Access token expired; handled internally by refreshing once."""


class ForbiddenError(WallabagClientError):
    """403 from the server."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=403)


class NotFoundError(WallabagClientError):
    """404 from the server."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)


class NotModifiedError(WallabagClientError):
    """304 from the server."""

    def __init__(self, message: str = "Not modified") -> None:
        super().__init__(message, status_code=304)


class WallabagHTTPError(WallabagClientError):
    """Any other unsuccessful response."""

    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(message, status_code=status_code)
        self.body = body


def _is_retryable_error(exc: Exception) -> bool:
    """Check if an exception is retryable.

    Args:
        exc: The exception to check

    Returns:
        True if the error should be retried
    """
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    return isinstance(exc, WallabagRetryableError)


def _calculate_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """Calculate delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter: Jitter factor (0.1 = 10% random variation)

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2**attempt), max_delay)
    jitter_amount = delay * jitter * random.random()
    return delay + jitter_amount


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    operation_name: str = "operation",
) -> T:
    """Execute an async function with exponential backoff retry.

    Args:
        func: Async function to execute
        max_retries: Maximum number of retry attempts
        base_delay: Base delay between retries in seconds
        max_delay: Maximum delay between retries
        jitter: Random jitter factor to add to delay
        operation_name: Name of operation for logging

    Returns:
        Result of the function

    Raises:
        WallabagRetryableError: If all retries are exhausted
        WallabagClientError: Non-retryable failures, raised immediately
    """
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except Exception as e:
            if not _is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    "wallabag_retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt + 1,
                        "error": str(e),
                    },
                )
                msg = f"{operation_name} failed after {attempt + 1} attempts: {e}"
                status_code = getattr(e, "status_code", None)
                raise WallabagRetryableError(msg, status_code=status_code) from e

            delay = _calculate_delay(attempt, base_delay, max_delay, jitter)
            logger.warning(
                "wallabag_retry_attempt",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 2),
                    "error": str(e),
                },
            )
            await asyncio.sleep(delay)

    msg = f"{operation_name} failed"
    raise WallabagClientError(msg)


def _error_details(response: httpx.Response) -> tuple[str, str | None]:
    """Pull a readable message out of a wallabag/FOSRest error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase, None
    if not isinstance(data, dict):
        return str(data), None
    description = data.get("error_description")
    if description:
        return str(description), str(description)
    error = data.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or error), None
    if error:
        return str(error), None
    return response.text, None


def raise_for_status(response: httpx.Response) -> None:
    """Map an unsuccessful response to the matching client error."""
    status = response.status_code
    if response.is_success:
        return
    if status == 304:
        raise NotModifiedError
    message, description = _error_details(response)
    if status == 401:
        if description and "expired" in description:
            raise ExpiredTokenError(message, description=description)
        raise UnauthorizedError(message, description=description)
    if status == 403:
        raise ForbiddenError(message)
    if status == 404:
        raise NotFoundError(message)
    if status in RETRYABLE_STATUS_CODES:
        raise WallabagRetryableError(f"HTTP {status}: {message}", status_code=status)
    raise WallabagHTTPError(f"HTTP {status}: {message}", status_code=status, body=response.text)


class WallabagClient:
    """Async HTTP client for the wallabag v2 API."""

    # Default per-endpoint timeouts (seconds)
    DEFAULT_TIMEOUTS: dict[str, float] = {
        "token": 15.0,
        "get_entries_page": 60.0,
        "get_entry": 30.0,
        "create_entry": 60.0,  # server fetches the article
        "update_entry": 30.0,
        "delete_entry": 15.0,
        "check_url_exists": 15.0,
        "get_annotations": 15.0,
        "create_annotation": 15.0,
        "update_annotation": 15.0,
        "delete_annotation": 15.0,
        "get_tags": 30.0,
    }

    def __init__(
        self,
        base_url: str,
        client_id: str,
        client_secret: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        endpoint_timeouts: dict[str, float] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize wallabag client.

        Args:
            base_url: Server root (e.g., https://app.wallabag.it)
            client_id: OAuth client id created in the wallabag UI
            client_secret: OAuth client secret
            username: Account username
            password: Account password
            timeout: Default request timeout in seconds
            max_retries: Maximum number of retry attempts for transient failures
            retry_base_delay: Base delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            endpoint_timeouts: Custom per-endpoint timeouts (overrides defaults)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self.endpoint_timeouts = {**self.DEFAULT_TIMEOUTS}
        if endpoint_timeouts:
            self.endpoint_timeouts.update(endpoint_timeouts)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token: TokenInfo | None = None

    @classmethod
    def from_config(
        cls, config: WallabagConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> WallabagClient:
        return cls(
            config.url,
            config.client_id,
            config.client_secret,
            config.username,
            config.password,
            timeout=config.timeout_sec,
            max_retries=config.max_retries,
            transport=transport,
        )

    def get_timeout(self, endpoint: str) -> float:
        return self.endpoint_timeouts.get(endpoint, self.timeout)

    async def __aenter__(self) -> Self:
        """Enter async context."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        """Exit async context."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client."""
        if self._client is None:
            raise WallabagClientError("Client not initialized. Use async context manager.")
        return self._client

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def _request_token(self, fields: dict[str, str]) -> TokenInfo:
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            **fields,
        }
        response = await self.client.post(
            TOKEN_PATH, json=payload, timeout=self.get_timeout("token")
        )
        raise_for_status(response)
        self._token = TokenInfo.model_validate(response.json())
        return self._token

    async def _load_token(self) -> TokenInfo:
        """Obtain a token with the password grant."""
        logger.debug("wallabag_token_requested", extra={"grant_type": "password"})
        return await self._request_token(
            {"grant_type": "password", "username": self.username, "password": self.password}
        )

    async def _refresh_token(self) -> TokenInfo:
        """Exchange the refresh token; fall back to the password grant if it is rejected."""
        if self._token is None:
            return await self._load_token()
        logger.debug("wallabag_token_requested", extra={"grant_type": "refresh_token"})
        try:
            return await self._request_token(
                {"grant_type": "refresh_token", "refresh_token": self._token.refresh_token}
            )
        except (UnauthorizedError, WallabagHTTPError) as e:
            logger.info("wallabag_refresh_token_rejected", extra={"error": str(e)})
            return await self._load_token()

    async def _ensure_token(self) -> TokenInfo:
        if self._token is None:
            return await self._load_token()
        return self._token

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        *,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        token = await self._ensure_token()
        response = await self.client.request(
            method,
            path,
            params=params,
            json=json,
            headers={"Authorization": f"Bearer {token.access_token}"},
            timeout=self.get_timeout(endpoint),
        )
        logger.debug(
            "wallabag_response",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "body": truncate_log_content(response.text),
            },
        )
        raise_for_status(response)
        return response

    async def _request(
        self,
        method: str,
        path: str,
        *,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        operation_name: str | None = None,
    ) -> Any:
        """Send an authorized request and return the decoded JSON body.

        An expired access token is refreshed and the request sent once more;
        any other error propagates.
        """

        async def _attempt() -> Any:
            try:
                response = await self._send(
                    method, path, endpoint=endpoint, params=params, json=json
                )
            except ExpiredTokenError:
                logger.info("wallabag_token_expired", extra={"operation": endpoint})
                await self._refresh_token()
                response = await self._send(
                    method, path, endpoint=endpoint, params=params, json=json
                )
            return response.json()

        return await self._with_retry(_attempt, operation_name or endpoint)

    async def _with_retry(
        self,
        func: Callable[[], Awaitable[T]],
        operation_name: str,
    ) -> T:
        return await retry_with_backoff(
            func,
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            operation_name=operation_name,
        )

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    async def get_entries_page(self, entries_filter: EntriesFilter, page: int = 1) -> EntriesPage:
        """Get one page of entries.

        Raises:
            NotFoundError: If ``page`` is past the last page
        """
        data = await self._request(
            "GET",
            ENTRIES_PATH,
            endpoint="get_entries_page",
            params=entries_filter.to_params(page),
            operation_name=f"get_entries_page({page})",
        )
        return EntriesPage.from_response(data)

    async def get_entries(self, entries_filter: EntriesFilter | None = None) -> list[Entry]:
        """Get all entries matching the filter (handles pagination)."""
        entries_filter = entries_filter or EntriesFilter()
        entries: list[Entry] = []
        page_number = 1

        while True:
            page = await self.get_entries_page(entries_filter, page_number)
            entries.extend(page.entries)
            if page.current_page < page.total_pages:
                page_number = page.current_page + 1
            else:
                break

        logger.info(
            "wallabag_fetched_entries",
            extra={"count": len(entries), "since": entries_filter.since},
        )
        return entries

    async def get_entry(self, entry_id: int) -> Entry:
        data = await self._request(
            "GET",
            _entry_path(entry_id),
            endpoint="get_entry",
            operation_name=f"get_entry({entry_id})",
        )
        return Entry.model_validate(data)

    async def create_entry(self, new_entry: NewEntry) -> Entry:
        data = await self._request(
            "POST",
            ENTRIES_PATH,
            endpoint="create_entry",
            json=new_entry.to_payload(),
        )
        entry = Entry.model_validate(data)
        logger.info("wallabag_entry_created", extra={"entry_id": entry.id, "url": new_entry.url})
        return entry

    async def update_entry(self, entry_id: int, patch: PatchEntry) -> Entry:
        data = await self._request(
            "PATCH",
            _entry_path(entry_id),
            endpoint="update_entry",
            json=patch.to_payload(),
            operation_name=f"update_entry({entry_id})",
        )
        return Entry.model_validate(data)

    async def delete_entry(self, entry_id: int) -> Entry:
        """Delete an entry and return its last state.

        The server omits the id from the deleted entity, so it is restored
        from the request.
        """
        data = await self._request(
            "DELETE",
            _entry_path(entry_id),
            endpoint="delete_entry",
            operation_name=f"delete_entry({entry_id})",
        )
        logger.info("wallabag_entry_deleted", extra={"entry_id": entry_id})
        return Entry.model_validate({**data, "id": entry_id})

    async def check_url_exists(self, url: str) -> int | None:
        """Return the id of the entry saved for ``url``, or None."""
        data = await self._request(
            "GET",
            EXISTS_PATH,
            endpoint="check_url_exists",
            params={"url": url, "return_id": 1},
        )
        exists = data.get("exists")
        # Older servers answer with a bare boolean.
        if isinstance(exists, bool) or exists is None:
            return None
        return int(exists)

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    async def get_annotations(self, entry_id: int) -> list[Annotation]:
        data = await self._request(
            "GET",
            _annotation_path(entry_id),
            endpoint="get_annotations",
            operation_name=f"get_annotations({entry_id})",
        )
        return [Annotation.model_validate(row) for row in data.get("rows", [])]

    async def create_annotation(self, entry_id: int, annotation: NewAnnotation) -> Annotation:
        data = await self._request(
            "POST",
            _annotation_path(entry_id),
            endpoint="create_annotation",
            json=annotation.to_payload(),
            operation_name=f"create_annotation({entry_id})",
        )
        created = Annotation.model_validate(data)
        logger.info(
            "wallabag_annotation_created",
            extra={"entry_id": entry_id, "annotation_id": created.id},
        )
        return created

    async def update_annotation(self, annotation: Annotation) -> Annotation:
        data = await self._request(
            "PUT",
            _annotation_path(annotation.id),
            endpoint="update_annotation",
            json=annotation.model_dump(mode="json", by_alias=True),
            operation_name=f"update_annotation({annotation.id})",
        )
        return Annotation.model_validate(data)

    async def delete_annotation(self, annotation_id: int) -> Annotation:
        """Delete an annotation and return its last state, id restored from the request."""
        data = await self._request(
            "DELETE",
            _annotation_path(annotation_id),
            endpoint="delete_annotation",
            operation_name=f"delete_annotation({annotation_id})",
        )
        logger.info("wallabag_annotation_deleted", extra={"annotation_id": annotation_id})
        return Annotation.model_validate({**data, "id": annotation_id})

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    async def get_tags(self) -> list[Tag]:
        data = await self._request("GET", TAGS_PATH, endpoint="get_tags")
        return [Tag.model_validate(tag) for tag in data]
