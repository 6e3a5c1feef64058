"""Exception taxonomy shared by the store, the mutator and the sync engine."""

from __future__ import annotations

from typing import Optional


class TaskSyncError(Exception):
    """Base class for every error raised by tasksync."""


class ValidationError(TaskSyncError):
    """Bad input to a task mutation (caller's fault)."""


class NotFoundError(TaskSyncError):
    """The target task does not exist or is tombstoned."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class ConfigError(TaskSyncError):
    """Configuration could not be loaded or failed validation."""


class StoreError(TaskSyncError):
    """The durable task document could not be read."""


class TransportError(TaskSyncError):
    """The remote authority was unreachable or the request failed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IntegrityMismatch(TransportError):
    """The batch response was malformed or did not match the submitted items."""


class ConflictUnresolved(TaskSyncError):
    """A conflict verdict arrived without data the client could resolve against."""

    def __init__(self, task_id: str, reason: str) -> None:
        super().__init__(f"Could not resolve conflict for {task_id}: {reason}")
        self.task_id = task_id
        self.reason = reason
