from __future__ import annotations

from datetime import UTC, datetime

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso(value: datetime) -> str:
    """Serialize to a fixed-width ISO-8601 UTC string.

    Fixed width keeps lexicographic order equal to chronological order, so
    stored timestamps can be compared directly in SQL.
    """
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into an aware UTC datetime."""
    return ensure_utc(datetime.fromisoformat(value))


def to_epoch_seconds(value: datetime) -> int:
    return int(ensure_utc(value).timestamp())
