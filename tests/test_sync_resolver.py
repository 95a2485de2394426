"""Unit tests for last-write-wins conflict resolution.

Covers:
- compare_instants: ordering, equality across time zones, naive values
- resolve: missing local copy, older/equal/newer local, entity mismatches
"""

from __future__ import annotations

import unittest
from datetime import UTC, datetime, timedelta, timezone

import pytest

from tests.conftest import BASE_TIME, at, make_annotation, make_entry
from wallabag_offline.adapters.wallabag.sync.resolver import Resolution, compare_instants, resolve
from wallabag_offline.domain.exceptions.domain_exceptions import (
    ReconciliationInvariantViolationError,
)

# ---------------------------------------------------------------------------
# compare_instants
# ---------------------------------------------------------------------------


class TestCompareInstants(unittest.TestCase):
    def test_older_local_is_negative(self):
        assert compare_instants(at(0), at(1)) == -1

    def test_newer_local_is_positive(self):
        assert compare_instants(at(5), at(1)) == 1

    def test_same_instant_in_different_zones_is_equal(self):
        """Offsets are normalized before comparing."""
        plus_two = BASE_TIME.astimezone(timezone(timedelta(hours=2)))
        assert compare_instants(BASE_TIME, plus_two) == 0

    def test_naive_values_are_treated_as_utc(self):
        naive = datetime(2024, 3, 1, 12, 0, 0)
        assert compare_instants(naive, datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)) == 0


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------


class TestResolve(unittest.TestCase):
    def test_missing_local_pulls(self):
        assert resolve(None, make_entry(1)) is Resolution.PULL

    def test_older_local_entry_pulls(self):
        assert resolve(make_entry(1, at(0)), make_entry(1, at(10))) is Resolution.PULL

    def test_equal_timestamps_are_noop(self):
        """Equality never means "last processed wins", whatever the other fields say."""
        local = make_entry(1, at(0), title="local title")
        remote = make_entry(1, at(0), title="remote title")
        assert resolve(local, remote) is Resolution.NOOP

    def test_newer_local_entry_pushes(self):
        assert resolve(make_entry(1, at(10)), make_entry(1, at(0))) is Resolution.PUSH

    def test_annotations_follow_the_same_rules(self):
        assert resolve(make_annotation(7, at(0)), make_annotation(7, at(1))) is Resolution.PULL
        assert resolve(make_annotation(7, at(1)), make_annotation(7, at(1))) is Resolution.NOOP
        assert resolve(make_annotation(7, at(2)), make_annotation(7, at(1))) is Resolution.PUSH

    def test_resolution_is_deterministic(self):
        local, remote = make_entry(3, at(4)), make_entry(3, at(2))
        assert {resolve(local, remote) for _ in range(5)} == {Resolution.PUSH}

    def test_different_ids_raise(self):
        with pytest.raises(ReconciliationInvariantViolationError) as exc_info:
            resolve(make_entry(1), make_entry(2))
        assert exc_info.value.details == {"local_id": 1, "remote_id": 2}

    def test_different_kinds_raise(self):
        with pytest.raises(ReconciliationInvariantViolationError):
            resolve(make_entry(1), make_annotation(1))


if __name__ == "__main__":
    unittest.main()
