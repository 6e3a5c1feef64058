"""Provide the public `tasksync` package exports."""

from __future__ import annotations

from .config import SyncConfig, load_sync_config
from .sync.engine import SyncEngine, SyncResult
from .task_engine.engine import TaskEngine
from .task_engine.store import TaskStore

__all__ = ["SyncConfig", "SyncEngine", "SyncResult", "TaskEngine", "TaskStore", "load_sync_config"]
