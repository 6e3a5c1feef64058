"""Tests for the task and sync-queue models."""

from __future__ import annotations

import pytest

from tasksync.task_engine.model import SyncOperation, SyncQueueItem, SyncStatus, Task


class TestTask:
    def test_defaults(self) -> None:
        t = Task(title="Write docs")
        assert t.completed is False
        assert t.is_deleted is False
        assert t.sync_status == SyncStatus.PENDING
        assert t.server_id is None
        assert t.last_synced_at is None
        assert t.id  # generated

    def test_from_dict_coerces_flags_and_status(self) -> None:
        t = Task.from_dict({
            "id": "t1",
            "title": "A",
            "completed": "true",
            "is_deleted": 0,
            "sync_status": "bogus",
            "created_at": "2026-01-01T00:00:00+00:00",
            "updated_at": "2026-01-01T00:00:00+00:00",
            "server_id": "",
        })
        assert t.completed is True
        assert t.is_deleted is False
        assert t.sync_status == SyncStatus.PENDING
        assert t.server_id is None

    def test_to_dict_uses_plain_values(self) -> None:
        data = Task(id="t1", title="A", sync_status=SyncStatus.ERROR).to_dict()
        assert data["sync_status"] == "error"
        assert data["completed"] is False

    def test_snapshot_is_detached(self) -> None:
        t = Task(id="t1", title="Before")
        snap = t.snapshot()
        t.title = "After"
        assert snap.title == "Before"

    def test_needs_sync(self) -> None:
        assert SyncStatus.PENDING.needs_sync
        assert SyncStatus.ERROR.needs_sync
        assert not SyncStatus.SYNCED.needs_sync


class TestSyncQueueItem:
    def test_for_mutation_snapshots_task(self) -> None:
        t = Task(id="t1", title="A")
        item = SyncQueueItem.for_mutation(SyncOperation.CREATE, t)
        t.title = "changed later"
        assert item.task_id == "t1"
        assert item.data.title == "A"
        assert item.retry_count == 0

    def test_delete_requires_tombstone(self) -> None:
        with pytest.raises(ValueError, match="tombstoned"):
            SyncQueueItem(task_id="t1", operation=SyncOperation.DELETE, data=Task(id="t1", title="A"))

    def test_update_rejects_tombstone(self) -> None:
        with pytest.raises(ValueError, match="cannot carry"):
            SyncQueueItem(
                task_id="t1",
                operation=SyncOperation.UPDATE,
                data=Task(id="t1", title="A", is_deleted=True),
            )

    def test_snapshot_must_match_task_id(self) -> None:
        with pytest.raises(ValueError, match="does not match"):
            SyncQueueItem(task_id="t1", operation=SyncOperation.CREATE, data=Task(id="t2", title="A"))

    def test_operation_string_is_coerced(self) -> None:
        item = SyncQueueItem(task_id="t1", operation="update", data=Task(id="t1", title="A"))  # type: ignore[arg-type]
        assert item.operation is SyncOperation.UPDATE

    def test_from_dict_without_snapshot_raises(self) -> None:
        with pytest.raises(ValueError, match="no task snapshot"):
            SyncQueueItem.from_dict({"id": "q1", "task_id": "t1", "operation": "create"})

    def test_dict_form_nests_snapshot(self) -> None:
        t = Task(id="t1", title="A", is_deleted=True)
        item = SyncQueueItem.for_mutation(SyncOperation.DELETE, t)
        data = item.to_dict()
        assert data["operation"] == "delete"
        assert data["data"]["is_deleted"] is True
        restored = SyncQueueItem.from_dict(data)
        assert restored.id == item.id
        assert restored.data.is_deleted is True
