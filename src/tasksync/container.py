from __future__ import annotations

from pathlib import Path
from typing import Optional

import httpx

from .config import SyncConfig, load_sync_config
from .constants import STATE_DIR_NAME
from .sync.engine import SyncEngine
from .sync.remote import RemoteAuthority
from .task_engine.engine import TaskEngine
from .task_engine.store import TaskStore


def ensure_state_root(project_dir: Path) -> Path:
    state_root = project_dir / STATE_DIR_NAME
    state_root.mkdir(parents=True, exist_ok=True)
    return state_root


class Container:
    """Wire the store, the task engine and the sync engine for one project."""

    def __init__(
        self,
        project_dir: Path,
        config: Optional[SyncConfig] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.project_dir = project_dir.resolve()
        self.state_root = ensure_state_root(self.project_dir)
        self.config = config if config is not None else load_sync_config(self.project_dir)

        self.store = TaskStore(self.state_root)
        self.tasks = TaskEngine(self.store)
        self.remote = RemoteAuthority(self.config, client=http_client)
        self.sync = SyncEngine(self.store, self.config, remote=self.remote)

    def close(self) -> None:
        self.remote.close()

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
