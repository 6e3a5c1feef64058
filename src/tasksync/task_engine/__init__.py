"""Local task store, sync queue and task mutator.

``TaskStore`` persists tasks and their pending sync operations together;
``TaskEngine`` is the only writer of local mutations.
"""

from .engine import TaskEngine
from .model import SyncOperation, SyncQueueItem, SyncStatus, Task
from .store import TaskStore

__all__ = ["SyncOperation", "SyncQueueItem", "SyncStatus", "Task", "TaskEngine", "TaskStore"]
