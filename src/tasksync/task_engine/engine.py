"""Task engine: local CRUD that records every mutation for sync.

This is the entry-point for all task manipulation.  Each mutating call
writes the task row and appends the matching :class:`SyncQueueItem` inside a
single :meth:`TaskStore.transaction`, so the store never holds a change
without the obligation to sync it (or vice versa).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from loguru import logger

from ..errors import NotFoundError, ValidationError
from ..utils import _next_stamp
from .model import SyncOperation, SyncQueueItem, SyncStatus, Task
from .store import TaskStore, _StoreTx

# Fields callers may change through ``update_task``.
UPDATABLE_FIELDS = frozenset({"title", "description", "completed"})


def _clean_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("'title' is required and must be non-empty")
    return title.strip()


def _enqueue_stamp(tx: _StoreTx) -> str:
    # Store-wide monotonic enqueue time, independent of any task's updated_at.
    return _next_stamp(tx.queue.latest_created_at())


class TaskEngine:
    """Create, update and soft-delete tasks while feeding the sync queue.

    Parameters
    ----------
    store:
        A :class:`TaskStore`, or a path to the ``.tasksync/`` directory.
    """

    def __init__(self, store: TaskStore | Path) -> None:
        self.store = store if isinstance(store, TaskStore) else TaskStore(store)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_task(self, title: str, description: str = "") -> Task:
        """Create and persist a new task, returning it."""
        clean_title = _clean_title(title)
        if description is None:
            description = ""
        if not isinstance(description, str):
            raise ValidationError("'description' must be a string")

        stamp = _next_stamp(None)
        task = Task(
            title=clean_title,
            description=description,
            completed=False,
            created_at=stamp,
            updated_at=stamp,
            sync_status=SyncStatus.PENDING,
        )
        with self.store.transaction() as tx:
            tx.tasks.put(task)
            tx.queue.append(SyncQueueItem.for_mutation(SyncOperation.CREATE, task, created_at=_enqueue_stamp(tx)))
        logger.debug("Task created id={} title={!r}", task.id, task.title)
        return task

    def update_task(self, task_id: str, **changes: Any) -> Optional[Task]:
        """Merge *changes* into a live task.

        Returns ``None`` when the task is missing or tombstoned.
        """
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(unknown)}")
        if "title" in changes:
            changes["title"] = _clean_title(changes["title"])
        if "description" in changes and not isinstance(changes["description"], str):
            raise ValidationError("'description' must be a string")
        if "completed" in changes and not isinstance(changes["completed"], bool):
            raise ValidationError("'completed' must be a boolean")

        with self.store.transaction() as tx:
            task = tx.tasks.get(task_id)
            if task is None or task.is_deleted:
                return None
            for key, value in changes.items():
                setattr(task, key, value)
            task.updated_at = _next_stamp(task.updated_at)
            task.sync_status = SyncStatus.PENDING
            tx.tasks.put(task)
            tx.queue.append(SyncQueueItem.for_mutation(SyncOperation.UPDATE, task, created_at=_enqueue_stamp(tx)))
        logger.debug("Task updated id={} fields={}", task_id, sorted(changes))
        return task

    def delete_task(self, task_id: str) -> bool:
        """Tombstone a task.  Returns ``False`` only when no row exists."""
        with self.store.transaction() as tx:
            task = tx.tasks.get(task_id)
            if task is None:
                return False
            if task.is_deleted:
                # Already tombstoned: the pending (or synced) deletion stands.
                return True
            task.is_deleted = True
            task.updated_at = _next_stamp(task.updated_at)
            task.sync_status = SyncStatus.PENDING
            tx.tasks.put(task)
            tx.queue.append(SyncQueueItem.for_mutation(SyncOperation.DELETE, task, created_at=_enqueue_stamp(tx)))
        logger.debug("Task tombstoned id={}", task_id)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Optional[Task]:
        task = self.store.get_task(task_id)
        if task is None or task.is_deleted:
            return None
        return task

    def require_task(self, task_id: str) -> Task:
        task = self.get_task(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    def list_active(self) -> list[Task]:
        return [t for t in self.store.read_tasks() if not t.is_deleted]

    def list_pending_sync(self) -> list[Task]:
        """Rows still owed to the remote authority (tombstones included)."""
        return [t for t in self.store.read_tasks() if t.sync_status.needs_sync]
