"""Pytest configuration and shared helpers.

Helpers are plain functions so both unittest-style classes and pytest
functions can import them (``from tests.conftest import make_entry``).
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from wallabag_offline.config.wallabag import WallabagConfig
from wallabag_offline.db.session import DatabaseSessionManager
from wallabag_offline.domain.models import Annotation, Entry, Range, Tag
from wallabag_offline.infrastructure.persistence.sqlite.repositories.local_store_repository import (
    SqliteLocalStoreRepositoryAdapter,
)

# Keep a developer's real settings out of the test run.
for _name in list(os.environ):
    if _name.startswith("WALLABAG_"):
        os.environ.pop(_name)

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


def at(minutes: int) -> datetime:
    """Instant ``minutes`` after BASE_TIME (negative goes back)."""
    return BASE_TIME + timedelta(minutes=minutes)


def make_tag(tag_id: int, label: str | None = None) -> Tag:
    label = label or f"tag-{tag_id}"
    return Tag(id=tag_id, label=label, slug=label.lower().replace(" ", "-"))


def make_annotation(
    annotation_id: int, updated_at: datetime | None = None, **overrides: Any
) -> Annotation:
    updated_at = updated_at or BASE_TIME
    data: dict[str, Any] = {
        "id": annotation_id,
        "created_at": BASE_TIME - timedelta(days=1),
        "updated_at": updated_at,
        "quote": f"quote {annotation_id}",
        "ranges": [Range(start="/p[1]", start_offset=0, end="/p[1]", end_offset=12)],
        "text": f"note {annotation_id}",
        "user": "alice",
    }
    data.update(overrides)
    return Annotation(**data)


def make_entry(entry_id: int, updated_at: datetime | None = None, **overrides: Any) -> Entry:
    updated_at = updated_at or BASE_TIME
    data: dict[str, Any] = {
        "id": entry_id,
        "title": f"Article {entry_id}",
        "url": f"https://example.com/articles/{entry_id}",
        "content": f"<p>Body of article {entry_id}</p>",
        "created_at": BASE_TIME - timedelta(days=2),
        "updated_at": updated_at,
        "domain_name": "example.com",
        "http_status": "200",
        "mimetype": "text/html",
        "reading_time": 3,
        "user_id": 1,
        "user_name": "alice",
        "user_email": "alice@example.com",
    }
    data.update(overrides)
    return Entry(**data)


def make_wallabag_config(**overrides: Any) -> WallabagConfig:
    data: dict[str, Any] = {
        "url": "https://wallabag.example.com",
        "client_id": "1_client",
        "client_secret": "secret",
        "username": "alice",
        "password": "hunter2",
        "timeout_sec": 5,
        "max_retries": 0,
    }
    data.update(overrides)
    return WallabagConfig(**data)


def open_store(
    directory: str | Path,
) -> tuple[DatabaseSessionManager, SqliteLocalStoreRepositoryAdapter]:
    """Create a migrated store inside ``directory``."""
    session = DatabaseSessionManager(str(Path(directory) / "cache.sqlite3"))
    session.migrate()
    return session, SqliteLocalStoreRepositoryAdapter(session)


def static_client_factory(client: Any) -> Any:
    """Build a client factory that always yields ``client``."""

    @asynccontextmanager
    async def _factory(config: WallabagConfig) -> Any:
        yield client

    return _factory


@pytest.fixture
def store(tmp_path: Path):
    session, repository = open_store(tmp_path)
    yield repository
    session.close()
