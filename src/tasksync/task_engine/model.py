"""Task and sync-queue models for the offline task store.

A :class:`Task` is the local source of truth for one task.  Every local
mutation also produces a :class:`SyncQueueItem` carrying a snapshot of the
task at that moment; the reconciliation engine uploads these in FIFO order.
Both serialize to plain dicts for YAML persistence and for the wire.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from ..utils import _now_iso


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SyncStatus(str, Enum):
    """Where a task stands relative to the remote authority."""

    PENDING = "pending"
    SYNCED = "synced"
    ERROR = "error"

    @property
    def needs_sync(self) -> bool:
        return self in (SyncStatus.PENDING, SyncStatus.ERROR)


class SyncOperation(str, Enum):
    """The kind of local mutation a queue item records."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _generate_id() -> str:
    return str(uuid.uuid4())


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _opt_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A task row.  Never physically removed; deletion sets ``is_deleted``."""

    id: str = field(default_factory=_generate_id)
    title: str = ""
    description: str = ""
    completed: bool = False
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)
    is_deleted: bool = False
    sync_status: SyncStatus = SyncStatus.PENDING
    server_id: Optional[str] = None
    last_synced_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["sync_status"] = self.sync_status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """Deserialize from a plain dict, coercing the status enum gracefully."""
        raw_status = data.get("sync_status")
        try:
            status = SyncStatus(str(raw_status)) if raw_status is not None else SyncStatus.PENDING
        except ValueError:
            status = SyncStatus.PENDING
        return cls(
            id=str(data.get("id") or _generate_id()),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            completed=_as_bool(data.get("completed", False)),
            created_at=str(data.get("created_at") or _now_iso()),
            updated_at=str(data.get("updated_at") or _now_iso()),
            is_deleted=_as_bool(data.get("is_deleted", False)),
            sync_status=status,
            server_id=_opt_str(data.get("server_id")),
            last_synced_at=_opt_str(data.get("last_synced_at")),
        )

    def snapshot(self) -> "Task":
        """Detached copy used as queue payload."""
        return replace(self)


# ---------------------------------------------------------------------------
# Sync queue item
# ---------------------------------------------------------------------------

@dataclass
class SyncQueueItem:
    """One pending mutation awaiting upload.

    ``operation`` tags the payload: ``create`` and ``update`` carry a live
    snapshot, ``delete`` carries the post-tombstone snapshot.  The tag and the
    snapshot must agree, which ``__post_init__`` enforces.
    """

    task_id: str
    operation: SyncOperation
    data: Task
    id: str = field(default_factory=_generate_id)
    created_at: str = field(default_factory=_now_iso)
    retry_count: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.operation, SyncOperation):
            self.operation = SyncOperation(str(self.operation))
        if self.data.id != self.task_id:
            raise ValueError(f"Snapshot id {self.data.id} does not match task_id {self.task_id}")
        if self.operation == SyncOperation.DELETE and not self.data.is_deleted:
            raise ValueError("delete queue items must carry a tombstoned snapshot")
        if self.operation != SyncOperation.DELETE and self.data.is_deleted:
            raise ValueError(f"{self.operation.value} queue items cannot carry a tombstoned snapshot")
        if self.retry_count < 0:
            raise ValueError("retry_count must be non-negative")

    @classmethod
    def for_mutation(cls, operation: SyncOperation, task: Task, *, created_at: Optional[str] = None) -> "SyncQueueItem":
        return cls(
            task_id=task.id,
            operation=operation,
            data=task.snapshot(),
            created_at=created_at or _now_iso(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "operation": self.operation.value,
            "data": self.data.to_dict(),
            "created_at": self.created_at,
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncQueueItem":
        snapshot = data.get("data")
        if not isinstance(snapshot, dict):
            raise ValueError(f"Queue item {data.get('id')!r} has no task snapshot")
        return cls(
            id=str(data.get("id") or _generate_id()),
            task_id=str(data.get("task_id") or snapshot.get("id") or ""),
            operation=SyncOperation(str(data.get("operation"))),
            data=Task.from_dict(snapshot),
            created_at=str(data.get("created_at") or _now_iso()),
            retry_count=int(data.get("retry_count") or 0),
        )
