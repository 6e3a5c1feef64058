"""File-based task store and sync queue with thread-safe locking.

Tasks and pending sync operations live in one YAML document
(``tasks.yaml``) inside the project's ``.tasksync/`` directory.  All writes go
through :meth:`TaskStore.transaction`, which holds an exclusive file lock,
loads both collections, and saves them together only when the block exits
cleanly.  A task row and its queue entry are therefore always persisted (or
discarded) as a pair.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from ..constants import STORE_FILE, STORE_LOCK_FILE, STORE_VERSION
from ..errors import StoreError
from ..io_utils import FileLock, _atomic_write_yaml, _load_data_with_error
from ..utils import _parse_iso
from .model import SyncQueueItem, Task

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

class _TaskTable:
    def __init__(self, tasks: list[Task], tx: "_StoreTx") -> None:
        self._tasks = tasks
        self._tx = tx
        self._index: dict[str, int] = {t.id: i for i, t in enumerate(tasks)}

    def get(self, task_id: str) -> Optional[Task]:
        """Fetch a row, tombstones included."""
        idx = self._index.get(task_id)
        return self._tasks[idx] if idx is not None else None

    def put(self, task: Task) -> Task:
        idx = self._index.get(task.id)
        if idx is None:
            self._index[task.id] = len(self._tasks)
            self._tasks.append(task)
        else:
            self._tasks[idx] = task
        self._tx.dirty = True
        return task

    def all(self) -> list[Task]:
        return list(self._tasks)

    def active(self) -> list[Task]:
        return [t for t in self._tasks if not t.is_deleted]

    def needing_sync(self) -> list[Task]:
        return [t for t in self._tasks if t.sync_status.needs_sync]

    def __len__(self) -> int:
        return len(self._tasks)


class _QueueTable:
    def __init__(self, items: list[SyncQueueItem], tx: "_StoreTx") -> None:
        self._items = items
        self._tx = tx

    def append(self, item: SyncQueueItem) -> SyncQueueItem:
        if any(existing.id == item.id for existing in self._items):
            raise ValueError(f"Queue item {item.id} already exists")
        self._items.append(item)
        self._tx.dirty = True
        return item

    def items(self) -> list[SyncQueueItem]:
        """Pending items, oldest first (insertion order breaks ties)."""
        return sorted(self._items, key=lambda i: _parse_iso(i.created_at) or _EPOCH)

    def latest_created_at(self) -> Optional[str]:
        ordered = self.items()
        return ordered[-1].created_at if ordered else None

    def get(self, item_id: str) -> Optional[SyncQueueItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def for_task(self, task_id: str) -> list[SyncQueueItem]:
        return [i for i in self.items() if i.task_id == task_id]

    def remove(self, item_id: str) -> bool:
        for idx, item in enumerate(self._items):
            if item.id == item_id:
                self._items.pop(idx)
                self._tx.dirty = True
                return True
        return False

    def touch(self, item: SyncQueueItem) -> None:
        """Mark an in-place change (e.g. ``retry_count``) for saving."""
        self._tx.dirty = True

    def __len__(self) -> int:
        return len(self._items)


class _StoreTx:
    """In-memory transaction over the task table and the sync queue.

    Mutations are collected and flushed back to disk when the
    ``transaction`` context-manager exits without an exception.
    """

    def __init__(self, tasks: list[Task], queue: list[SyncQueueItem]) -> None:
        self.dirty = False
        self.tasks = _TaskTable(tasks, self)
        self.queue = _QueueTable(queue, self)


# ---------------------------------------------------------------------------
# TaskStore
# ---------------------------------------------------------------------------

class TaskStore:
    """Thread-safe, file-backed store for tasks and their sync queue.

    Parameters
    ----------
    state_dir:
        Path to the ``.tasksync/`` directory for the project.
    """

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = state_dir
        self._store_path = state_dir / STORE_FILE
        self._lock = FileLock(state_dir / STORE_LOCK_FILE)
        self._thread_lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._store_path

    # -- internal helpers ---------------------------------------------------

    def _load(self) -> tuple[list[Task], list[SyncQueueItem]]:
        raw, err = _load_data_with_error(self._store_path, {})
        if err:
            raise StoreError(err)
        tasks = [Task.from_dict(d) for d in _as_list(raw.get("tasks")) if isinstance(d, dict)]
        try:
            queue = [SyncQueueItem.from_dict(d) for d in _as_list(raw.get("sync_queue")) if isinstance(d, dict)]
        except ValueError as exc:
            raise StoreError(f"{self._store_path.name}: invalid sync queue entry: {exc}") from exc
        return tasks, queue

    def _save(self, tasks: list[Task], queue: list[SyncQueueItem]) -> None:
        payload = {
            "version": STORE_VERSION,
            "tasks": [t.to_dict() for t in tasks],
            "sync_queue": [i.to_dict() for i in queue],
        }
        _atomic_write_yaml(self._store_path, payload)

    # -- public API ---------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[_StoreTx]:
        """Acquire the lock, load everything, yield a transaction, save on exit.

        Usage::

            with store.transaction() as tx:
                task = tx.tasks.get(task_id)
                tx.queue.append(SyncQueueItem.for_mutation(op, task))
                # both saved together on exit

        If the block raises, nothing is written.
        """
        with self._thread_lock:
            with self._lock:
                tasks, queue = self._load()
                tx = _StoreTx(tasks, queue)
                yield tx
                if tx.dirty:
                    self._save(tx.tasks.all(), tx.queue._items)

    def read_tasks(self) -> list[Task]:
        """Return a snapshot of every row (no lock held after return)."""
        with self._thread_lock:
            with self._lock:
                return self._load()[0]

    def read_queue(self) -> list[SyncQueueItem]:
        """Return the pending queue, oldest first."""
        with self.transaction() as tx:
            return tx.queue.items()

    def get_task(self, task_id: str) -> Optional[Task]:
        """Fetch a single row, tombstones included."""
        for task in self.read_tasks():
            if task.id == task_id:
                return task
        return None

    def queue_depth(self) -> int:
        with self._thread_lock:
            with self._lock:
                return len(self._load()[1])

    def last_synced_at(self) -> Optional[str]:
        """Latest ``last_synced_at`` across all rows, or ``None``."""
        best: Optional[datetime] = None
        best_raw: Optional[str] = None
        for task in self.read_tasks():
            stamp = _parse_iso(task.last_synced_at)
            if stamp is not None and (best is None or stamp > best):
                best, best_raw = stamp, task.last_synced_at
        return best_raw


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, list) else []
