"""Command-line entrypoint: local task CRUD, sync cycles and the HTTP server."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .container import Container
from .errors import ConfigError, StoreError, ValidationError


def _configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan> - "
            "{message}"
        ),
    )


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _ctx(args: argparse.Namespace) -> Container:
    return Container(_resolve_project_dir(args.project_dir))


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")


def _task_create(args: argparse.Namespace) -> int:
    with _ctx(args) as container:
        try:
            task = container.tasks.create_task(args.title, args.description or "")
        except ValidationError as exc:
            sys.stderr.write(str(exc) + "\n")
            return 1
    _emit({"task": task.to_dict()})
    return 0


def _task_list(args: argparse.Namespace) -> int:
    with _ctx(args) as container:
        tasks = container.tasks.list_pending_sync() if args.pending else container.tasks.list_active()
    _emit({"tasks": [t.to_dict() for t in tasks]})
    return 0


def _task_update(args: argparse.Namespace) -> int:
    changes: dict[str, Any] = {}
    if args.title is not None:
        changes["title"] = args.title
    if args.description is not None:
        changes["description"] = args.description
    if args.completed is not None:
        changes["completed"] = args.completed
    with _ctx(args) as container:
        try:
            task = container.tasks.update_task(args.task_id, **changes)
        except ValidationError as exc:
            sys.stderr.write(str(exc) + "\n")
            return 1
    if task is None:
        sys.stderr.write(f"Task not found: {args.task_id}\n")
        return 1
    _emit({"task": task.to_dict()})
    return 0


def _task_delete(args: argparse.Namespace) -> int:
    with _ctx(args) as container:
        deleted = container.tasks.delete_task(args.task_id)
    _emit({"deleted": deleted, "task_id": args.task_id})
    return 0 if deleted else 1


def _sync_run(args: argparse.Namespace) -> int:
    with _ctx(args) as container:
        if not container.sync.check_connectivity():
            sys.stderr.write(f"Server not reachable: {container.config.api_base_url}\n")
            return 2
        result = container.sync.run_sync_cycle()
    _emit(result.to_dict())
    return 0 if result.success else 1


def _sync_status(args: argparse.Namespace) -> int:
    with _ctx(args) as container:
        _emit(container.sync.status())
    return 0


def _sync_health(args: argparse.Namespace) -> int:
    with _ctx(args) as container:
        online = container.sync.check_connectivity()
        _emit({"online": online, "api_base_url": container.config.api_base_url})
    return 0 if online else 2


def _server(args: argparse.Namespace) -> int:
    try:
        import uvicorn
    except ImportError:
        sys.stderr.write("Install server extras: pip install 'tasksync[server]'\n")
        return 1

    from .server import create_app

    app = create_app(project_dir=_resolve_project_dir(args.project_dir))
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {raw!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tasksync - offline-first task store with batch sync")
    parser.add_argument("--project-dir", default=None, help="Project directory (default: current working directory)")
    parser.add_argument("--log-level", default="INFO", help="Log level for stderr output (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    server = subparsers.add_parser("server", help="Start the HTTP server")
    server.add_argument("--host", default="127.0.0.1")
    server.add_argument("--port", default=3000, type=int)
    server.set_defaults(func=_server)

    task = subparsers.add_parser("task", help="Manage local tasks")
    task_sub = task.add_subparsers(dest="task_cmd", required=True)
    tcreate = task_sub.add_parser("create", help="Create a task")
    tcreate.add_argument("title")
    tcreate.add_argument("--description", default="")
    tcreate.set_defaults(func=_task_create)
    tlist = task_sub.add_parser("list", help="List active tasks")
    tlist.add_argument("--pending", action="store_true", help="Only tasks still waiting to sync")
    tlist.set_defaults(func=_task_list)
    tupdate = task_sub.add_parser("update", help="Update a task")
    tupdate.add_argument("task_id")
    tupdate.add_argument("--title", default=None)
    tupdate.add_argument("--description", default=None)
    tupdate.add_argument("--completed", type=_parse_bool, default=None)
    tupdate.set_defaults(func=_task_update)
    tdelete = task_sub.add_parser("delete", help="Soft-delete a task")
    tdelete.add_argument("task_id")
    tdelete.set_defaults(func=_task_delete)

    sync = subparsers.add_parser("sync", help="Reconcile with the remote authority")
    sync_sub = sync.add_subparsers(dest="sync_cmd", required=True)
    srun = sync_sub.add_parser("run", help="Run one sync cycle")
    srun.set_defaults(func=_sync_run)
    sstatus = sync_sub.add_parser("status", help="Show queue depth and last sync time")
    sstatus.set_defaults(func=_sync_status)
    shealth = sync_sub.add_parser("health", help="Probe the remote authority")
    shealth.set_defaults(func=_sync_health)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.log_level)
    try:
        return int(args.func(args))
    except (ConfigError, StoreError) as exc:
        sys.stderr.write(f"{exc}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
