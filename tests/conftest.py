"""Shared fixtures: a temp store, the task engine, and a scripted authority."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest

from tasksync.config import SyncConfig
from tasksync.sync.engine import SyncEngine
from tasksync.sync.remote import RemoteAuthority
from tasksync.task_engine.engine import TaskEngine
from tasksync.task_engine.store import TaskStore

AUTHORITY_URL = "http://authority.test/api"


def success_verdict(item: dict[str, Any]) -> dict[str, Any]:
    return {"client_id": item["task_id"], "server_id": f"srv_{item['task_id']}", "status": "success"}


class FakeAuthority:
    """Scriptable remote authority served through ``httpx.MockTransport``.

    - ``online`` toggles the health probe (offline raises ConnectError)
    - ``verdict`` maps one submitted item dict to its verdict dict
    - ``fail_batches`` holds 1-based batch numbers that fail at transport level
    - ``on_batch`` runs before the response is built (for concurrency tests)
    """

    def __init__(self) -> None:
        self.online = True
        self.health_calls = 0
        self.batches: list[dict[str, Any]] = []
        self.verdict: Callable[[dict[str, Any]], dict[str, Any]] = success_verdict
        self.fail_batches: set[int] = set()
        self.batch_status_code = 200
        self.on_batch: Optional[Callable[[dict[str, Any]], None]] = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.endswith("/sync/health"):
            self.health_calls += 1
            if not self.online:
                raise httpx.ConnectError("authority offline", request=request)
            return httpx.Response(200, json={"status": "ok"})
        if path.endswith("/sync/batch"):
            body = json.loads(request.content)
            self.batches.append(body)
            if self.on_batch is not None:
                self.on_batch(body)
            if len(self.batches) in self.fail_batches:
                raise httpx.ConnectError("connection reset", request=request)
            if self.batch_status_code != 200:
                return httpx.Response(self.batch_status_code, json={"error": "unavailable"})
            return httpx.Response(200, json={"processed_items": [self.verdict(i) for i in body["items"]]})
        return httpx.Response(404, json={"error": "not found"})

    @property
    def batch_sizes(self) -> list[int]:
        return [len(b["items"]) for b in self.batches]


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    d = tmp_path / ".tasksync"
    d.mkdir()
    return d


@pytest.fixture
def store(state_dir: Path) -> TaskStore:
    return TaskStore(state_dir)


@pytest.fixture
def engine(store: TaskStore) -> TaskEngine:
    return TaskEngine(store)


@pytest.fixture
def authority() -> FakeAuthority:
    return FakeAuthority()


@pytest.fixture
def http_client(authority: FakeAuthority):
    client = httpx.Client(transport=httpx.MockTransport(authority.handler))
    yield client
    client.close()


@pytest.fixture
def config() -> SyncConfig:
    return SyncConfig(api_base_url=AUTHORITY_URL)


@pytest.fixture
def make_sync_engine(store: TaskStore, http_client: httpx.Client) -> Callable[..., SyncEngine]:
    def _make(**overrides: Any) -> SyncEngine:
        cfg = SyncConfig(api_base_url=AUTHORITY_URL, **overrides)
        return SyncEngine(store, cfg, remote=RemoteAuthority(cfg, client=http_client))

    return _make


@pytest.fixture
def sync_engine(make_sync_engine: Callable[..., SyncEngine]) -> SyncEngine:
    return make_sync_engine()
