"""Tests for time, URL and logging helpers."""

from __future__ import annotations

import json
import logging
import sys
import unittest
from datetime import UTC, datetime, timedelta, timezone

import pytest
from loguru import logger as loguru_logger

from wallabag_offline.core.logging_utils import (
    EnhancedJsonFormatter,
    InterceptHandler,
    generate_correlation_id,
    setup_json_logging,
    truncate_log_content,
)
from wallabag_offline.core.time_utils import (
    EPOCH,
    ensure_utc,
    parse_iso,
    to_epoch_seconds,
    to_iso,
    utc_now,
)
from wallabag_offline.core.url_utils import validate_url

# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


class TestTimeUtils(unittest.TestCase):
    def test_utc_now_is_aware(self):
        assert utc_now().tzinfo is UTC

    def test_ensure_utc_converts_offsets(self):
        local = datetime(2024, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        converted = ensure_utc(local)
        assert converted.hour == 12
        assert converted.utcoffset() == timedelta(0)

    def test_iso_strings_have_fixed_width(self):
        whole = to_iso(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))
        fractional = to_iso(datetime(2024, 3, 1, 12, 0, 0, 5, tzinfo=UTC))
        assert whole == "2024-03-01T12:00:00.000000+00:00"
        assert len(whole) == len(fractional)
        assert whole < fractional

    def test_iso_round_trip(self):
        value = datetime(2024, 3, 1, 12, 0, 0, 123456, tzinfo=UTC)
        assert parse_iso(to_iso(value)) == value
        assert parse_iso("2024-03-01T14:00:00+02:00") == datetime(2024, 3, 1, 12, tzinfo=UTC)

    def test_epoch_seconds(self):
        assert to_epoch_seconds(EPOCH) == 0
        assert to_epoch_seconds(datetime(1970, 1, 1, 0, 1)) == 60


# ---------------------------------------------------------------------------
# URL validation
# ---------------------------------------------------------------------------


class TestValidateUrl(unittest.TestCase):
    def test_valid_url_is_stripped_only(self):
        url = " https://Example.com/Path?utm_source=x#frag "
        assert validate_url(url) == "https://Example.com/Path?utm_source=x#frag"

    def test_rejected_urls(self):
        for bad in (
            "",
            "example.com/no-scheme",
            "javascript:alert(1)",
            "file:///etc/passwd",
            "https://",
            "https://exa\x00mple.com",
            "https://example.com/" + "a" * 2048,
        ):
            with self.subTest(url=bad), pytest.raises(ValueError):
                validate_url(bad)

    def test_non_string_is_rejected(self):
        with pytest.raises(ValueError, match="must be a string"):
            validate_url(None)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "wallabag_offline.test", logging.INFO, __file__, 10, "event", (), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestEnhancedJsonFormatter(unittest.TestCase):
    def test_groups_sync_counters_and_extra(self):
        formatter = EnhancedJsonFormatter(include_location=False)
        record = _record(correlation_id="abc123", entries_pulled=3, mode="full")

        data = json.loads(formatter.format(record))

        assert data["message"] == "event"
        assert data["correlation_id"] == "abc123"
        assert data["sync"] == {"entries_pulled": 3}
        assert data["extra"] == {"mode": "full"}
        assert "line" not in data

    def test_location_and_exception(self):
        formatter = EnhancedJsonFormatter()
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 42, "failed", (), sys.exc_info()
            )

        data = json.loads(formatter.format(record))

        assert data["line"] == 42
        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "boom"

    def test_non_json_values_are_stringified(self):
        formatter = EnhancedJsonFormatter(include_location=False)
        data = json.loads(formatter.format(_record(last_sync=EPOCH)))
        assert data["extra"]["last_sync"] == "1970-01-01T00:00:00+00:00"


class TestInterceptHandler(unittest.TestCase):
    def test_extra_fields_are_bound_in_loguru(self):
        captured: list = []
        sink_id = loguru_logger.add(captured.append, level="DEBUG")
        std_logger = logging.getLogger("wallabag_offline.intercept_test")
        handler = InterceptHandler()
        std_logger.addHandler(handler)
        std_logger.propagate = False
        std_logger.setLevel(logging.DEBUG)
        try:
            std_logger.info("wallabag_sync_started", extra={"correlation_id": "c1"})
        finally:
            std_logger.removeHandler(handler)
            std_logger.propagate = True
            loguru_logger.remove(sink_id)

        assert len(captured) == 1
        record = captured[0].record
        assert record["message"] == "wallabag_sync_started"
        assert record["level"].name == "INFO"
        assert record["extra"]["correlation_id"] == "c1"


class TestSetupJsonLogging(unittest.TestCase):
    def setUp(self):
        self.root = logging.getLogger()
        self.saved_handlers = list(self.root.handlers)
        self.saved_level = self.root.level

    def tearDown(self):
        self.root.handlers[:] = self.saved_handlers
        self.root.setLevel(self.saved_level)

    def test_stdlib_mode_installs_json_handler(self):
        setup_json_logging("WARNING", use_loguru=False)

        assert self.root.level == logging.WARNING
        assert len(self.root.handlers) == 1
        assert isinstance(self.root.handlers[0].formatter, EnhancedJsonFormatter)
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_loguru_mode_installs_intercept_handler(self):
        setup_json_logging("DEBUG", use_loguru=True)

        assert isinstance(self.root.handlers[0], InterceptHandler)


class TestLogHelpers(unittest.TestCase):
    def test_correlation_ids_are_short_and_unique(self):
        ids = {generate_correlation_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(len(i) == 12 for i in ids)

    def test_truncate_log_content(self):
        assert truncate_log_content(None) is None
        assert truncate_log_content("short") == "short"
        truncated = truncate_log_content("x" * 600)
        assert truncated.startswith("x" * 500)
        assert truncated.endswith("[truncated 100 chars]")


if __name__ == "__main__":
    unittest.main()
