"""Last-write-wins conflict resolution for cached entities.

Resolution is a pure function of the local and remote versions of one
entity. It never touches the store or the network.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar

from wallabag_offline.core.time_utils import ensure_utc
from wallabag_offline.domain.exceptions.domain_exceptions import (
    ReconciliationInvariantViolationError,
)
from wallabag_offline.domain.models import Annotation, Entry

if TYPE_CHECKING:
    from datetime import datetime

T = TypeVar("T", Entry, Annotation)


class Resolution(StrEnum):
    """What to do with one entity."""

    PULL = "pull"  # store the remote version
    NOOP = "noop"  # already in sync
    PUSH = "push"  # send the local version, then store the server's answer


def compare_instants(local: datetime, remote: datetime) -> int:
    """Three-way compare two instants: -1 if local is older, 0 if equal, 1 if newer."""
    local_utc = ensure_utc(local)
    remote_utc = ensure_utc(remote)
    if local_utc < remote_utc:
        return -1
    if local_utc > remote_utc:
        return 1
    return 0


def resolve(local: T | None, remote: T) -> Resolution:
    """Decide how to reconcile ``local`` with ``remote``.

    Equal timestamps always mean "in sync", so repeated runs that see the
    same second-resolution timestamp never oscillate.

    Raises:
        ReconciliationInvariantViolationError: If the two versions are not the
            same entity (different kind or id)
    """
    if local is None:
        return Resolution.PULL

    if type(local) is not type(remote):
        msg = f"Cannot reconcile {type(local).__name__} with {type(remote).__name__}"
        raise ReconciliationInvariantViolationError(
            msg, details={"local_id": local.id, "remote_id": remote.id}
        )
    if local.id != remote.id:
        msg = f"Cannot reconcile {type(local).__name__} {local.id} with remote id {remote.id}"
        raise ReconciliationInvariantViolationError(
            msg, details={"local_id": local.id, "remote_id": remote.id}
        )

    ordering = compare_instants(local.updated_at, remote.updated_at)
    if ordering < 0:
        return Resolution.PULL
    if ordering > 0:
        return Resolution.PUSH
    return Resolution.NOOP
