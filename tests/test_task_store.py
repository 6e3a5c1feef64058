"""Tests for the file-backed task store and sync queue."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from tasksync.errors import StoreError
from tasksync.task_engine.model import SyncOperation, SyncQueueItem, SyncStatus, Task
from tasksync.task_engine.store import TaskStore


def _item(task: Task, created_at: str, op: SyncOperation = SyncOperation.CREATE) -> SyncQueueItem:
    return SyncQueueItem.for_mutation(op, task, created_at=created_at)


class TestTaskStore:
    def test_empty_read(self, store: TaskStore) -> None:
        assert store.read_tasks() == []
        assert store.read_queue() == []
        assert store.queue_depth() == 0
        assert store.last_synced_at() is None

    def test_transaction_persists_rows_and_queue_together(self, store: TaskStore) -> None:
        t = Task(id="t1", title="First")
        with store.transaction() as tx:
            tx.tasks.put(t)
            tx.queue.append(_item(t, "2026-01-01T00:00:00+00:00"))

        assert [x.id for x in store.read_tasks()] == ["t1"]
        queue = store.read_queue()
        assert len(queue) == 1
        assert queue[0].task_id == "t1"
        assert queue[0].data.title == "First"

    def test_exception_discards_whole_transaction(self, store: TaskStore) -> None:
        t = Task(id="t1", title="First")
        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                tx.tasks.put(t)
                tx.queue.append(_item(t, "2026-01-01T00:00:00+00:00"))
                raise RuntimeError("boom")

        assert store.read_tasks() == []
        assert store.read_queue() == []
        assert not store.path.exists()

    def test_put_replaces_existing_row(self, store: TaskStore) -> None:
        with store.transaction() as tx:
            tx.tasks.put(Task(id="t1", title="Old"))
        with store.transaction() as tx:
            tx.tasks.put(Task(id="t1", title="New"))

        tasks = store.read_tasks()
        assert len(tasks) == 1
        assert tasks[0].title == "New"

    def test_queue_is_fifo_by_created_at(self, store: TaskStore) -> None:
        a, b, c = Task(id="a", title="A"), Task(id="b", title="B"), Task(id="c", title="C")
        with store.transaction() as tx:
            tx.queue.append(_item(b, "2026-01-01T00:00:02+00:00"))
            tx.queue.append(_item(c, "2026-01-01T00:00:03+00:00"))
            tx.queue.append(_item(a, "2026-01-01T00:00:01+00:00"))

        assert [i.task_id for i in store.read_queue()] == ["a", "b", "c"]

    def test_queue_remove_and_for_task(self, store: TaskStore) -> None:
        t = Task(id="t1", title="A")
        first = _item(t, "2026-01-01T00:00:01+00:00")
        second = _item(t, "2026-01-01T00:00:02+00:00", SyncOperation.UPDATE)
        with store.transaction() as tx:
            tx.queue.append(first)
            tx.queue.append(second)

        with store.transaction() as tx:
            assert [i.id for i in tx.queue.for_task("t1")] == [first.id, second.id]
            assert tx.queue.remove(first.id)
            assert not tx.queue.remove("missing")

        assert [i.id for i in store.read_queue()] == [second.id]

    def test_duplicate_queue_item_raises(self, store: TaskStore) -> None:
        t = Task(id="t1", title="A")
        item = _item(t, "2026-01-01T00:00:01+00:00")
        with store.transaction() as tx:
            tx.queue.append(item)
            with pytest.raises(ValueError, match="already exists"):
                tx.queue.append(item)

    def test_flags_are_stored_as_real_booleans(self, store: TaskStore) -> None:
        with store.transaction() as tx:
            tx.tasks.put(Task(id="t1", title="A", completed=True, is_deleted=False))

        raw = yaml.safe_load(store.path.read_text(encoding="utf-8"))
        row = raw["tasks"][0]
        assert row["completed"] is True
        assert row["is_deleted"] is False

    def test_filters(self, store: TaskStore) -> None:
        with store.transaction() as tx:
            tx.tasks.put(Task(id="live", title="A", sync_status=SyncStatus.SYNCED))
            tx.tasks.put(Task(id="gone", title="B", is_deleted=True))
            tx.tasks.put(Task(id="bad", title="C", sync_status=SyncStatus.ERROR))

        with store.transaction() as tx:
            assert {t.id for t in tx.tasks.active()} == {"live", "bad"}
            assert {t.id for t in tx.tasks.needing_sync()} == {"gone", "bad"}
            assert tx.tasks.get("gone") is not None

    def test_last_synced_at_is_latest(self, store: TaskStore) -> None:
        with store.transaction() as tx:
            tx.tasks.put(Task(id="a", title="A", last_synced_at="2026-01-01T00:00:00+00:00"))
            tx.tasks.put(Task(id="b", title="B", last_synced_at="2026-03-01T00:00:00+00:00"))
            tx.tasks.put(Task(id="c", title="C"))

        assert store.last_synced_at() == "2026-03-01T00:00:00+00:00"

    def test_corrupted_file_raises_store_error(self, state_dir: Path) -> None:
        (state_dir / "tasks.yaml").write_text("tasks: [unclosed\n", encoding="utf-8")
        store = TaskStore(state_dir)
        with pytest.raises(StoreError):
            store.read_tasks()

    def test_failed_save_keeps_previous_document(self, store: TaskStore, monkeypatch: pytest.MonkeyPatch) -> None:
        with store.transaction() as tx:
            tx.tasks.put(Task(id="t1", title="Kept"))

        def _explode(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("tasksync.task_engine.store._atomic_write_yaml", _explode)
        with pytest.raises(OSError):
            with store.transaction() as tx:
                tx.tasks.put(Task(id="t2", title="Lost"))

        monkeypatch.undo()
        assert [t.id for t in store.read_tasks()] == ["t1"]
