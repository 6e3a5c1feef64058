"""Deterministic last-writer-wins conflict resolution."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from ..task_engine.model import Task
from ..utils import _parse_iso

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class Winner(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class Resolution:
    winner: Winner
    task: Task
    reason: str


def resolve_conflict(local: Task, remote: Task) -> Resolution:
    """Pick exactly one of *local* / *remote*.

    Rules, in order:
    1. The strictly later ``updated_at`` wins.
    2. On an exact tie, a lone tombstone wins (deletion beats a no-op edit).
    3. Otherwise the remote version wins.
    """
    local_ts = _parse_iso(local.updated_at) or _EPOCH
    remote_ts = _parse_iso(remote.updated_at) or _EPOCH

    if local_ts > remote_ts:
        return Resolution(Winner.LOCAL, local, "local newer")
    if remote_ts > local_ts:
        return Resolution(Winner.REMOTE, remote, "remote newer")
    if local.is_deleted and not remote.is_deleted:
        return Resolution(Winner.LOCAL, local, "tie: local tombstone")
    if remote.is_deleted and not local.is_deleted:
        return Resolution(Winner.REMOTE, remote, "tie: remote tombstone")
    return Resolution(Winner.REMOTE, remote, "tie: remote authority")
