"""FastAPI routing layer over the task engine and the sync engine.

Thin request/response mapping only: validation errors become 400, missing or
tombstoned tasks become 404, an unreachable authority turns ``POST
/api/sync`` into 503.  ``/api/sync/health`` and ``/api/sync/batch`` also let a
running instance act as a loopback authority for local development.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import httpx
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel

from ..config import SyncConfig
from ..container import Container
from ..errors import NotFoundError, ValidationError
from ..sync.wire import BatchSyncRequest, BatchSyncResponse, ProcessedItem
from ..utils import _now_iso


# ---------------------------------------------------------------------------
# Pydantic request models
# ---------------------------------------------------------------------------

class CreateTaskRequest(BaseModel):
    title: str
    description: str = ""


class UpdateTaskRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    completed: Optional[bool] = None


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    project_dir: Optional[Path] = None,
    config: Optional[SyncConfig] = None,
    http_client: Optional[httpx.Client] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        project_dir: Project directory holding ``.tasksync/`` (default: cwd).
        config: Sync configuration; loaded from the project when omitted.
        http_client: Optional client used to reach the remote authority.
        enable_cors: Whether to enable CORS.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="tasksync",
        description="Offline-first task store with batch sync",
        version="0.1.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    container = Container(project_dir or Path.cwd(), config=config, http_client=http_client)
    app.state.container = container

    # -- tasks --------------------------------------------------------------

    @app.get("/api/tasks")
    def list_tasks() -> dict[str, Any]:
        tasks = container.tasks.list_active()
        return {"tasks": [t.to_dict() for t in tasks], "total": len(tasks)}

    @app.get("/api/tasks/{task_id}")
    def get_task(task_id: str) -> dict[str, Any]:
        try:
            return {"task": container.tasks.require_task(task_id).to_dict()}
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))

    @app.post("/api/tasks", status_code=201)
    def create_task(req: CreateTaskRequest) -> dict[str, Any]:
        try:
            task = container.tasks.create_task(req.title, req.description)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"task": task.to_dict()}

    @app.put("/api/tasks/{task_id}")
    def update_task(task_id: str, req: UpdateTaskRequest) -> dict[str, Any]:
        changes = req.model_dump(exclude_unset=True, exclude_none=True)
        try:
            task = container.tasks.update_task(task_id, **changes)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        if task is None:
            raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
        return {"task": task.to_dict()}

    @app.delete("/api/tasks/{task_id}", status_code=204)
    def delete_task(task_id: str) -> Response:
        if not container.tasks.delete_task(task_id):
            raise HTTPException(status_code=404, detail=f"Task not found: {task_id}")
        return Response(status_code=204)

    # -- sync ---------------------------------------------------------------

    @app.post("/api/sync")
    def trigger_sync() -> dict[str, Any]:
        if not container.sync.check_connectivity():
            raise HTTPException(status_code=503, detail="Server not reachable")
        return container.sync.run_sync_cycle().to_dict()

    @app.get("/api/sync/status")
    def sync_status() -> dict[str, Any]:
        return container.sync.status()

    @app.get("/api/sync/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "timestamp": _now_iso()}

    @app.post("/api/sync/batch")
    def accept_batch(req: BatchSyncRequest) -> dict[str, Any]:
        if not req.checksum_matches():
            raise HTTPException(status_code=400, detail="Checksum mismatch")
        logger.debug("Loopback authority accepted {} item(s)", len(req.items))
        response = BatchSyncResponse(
            processed_items=[
                ProcessedItem(client_id=item.task_id, server_id=f"srv_{item.task_id}", status="success")
                for item in req.items
            ]
        )
        return response.model_dump(exclude_none=True)

    return app
