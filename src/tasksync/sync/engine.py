"""Reconciliation engine: drain the sync queue against the remote authority.

One cycle moves ``idle -> checking_connectivity -> draining -> idle``.  The
queue is snapshotted at the start of the cycle, cut into fixed-size batches
in FIFO order, and each batch is uploaded and settled before the next one is
sent.  Failures never abort the cycle; they are counted and reported in the
returned :class:`SyncResult`.
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from ..config import SyncConfig
from ..constants import UNKNOWN_SYNC_ERROR
from ..errors import ConflictUnresolved, IntegrityMismatch, TransportError
from ..task_engine.model import SyncQueueItem, SyncStatus, Task
from ..task_engine.store import TaskStore, _StoreTx
from ..utils import _now_iso
from .remote import RemoteAuthority
from .resolver import Winner, resolve_conflict
from .wire import BatchSyncRequest, ProcessedItem, TaskPayload

# Content fields copied from a winning remote version onto the local row.
_CONTENT_FIELDS = ("title", "description", "completed", "is_deleted", "updated_at")


class SyncState(str, Enum):
    IDLE = "idle"
    CHECKING_CONNECTIVITY = "checking_connectivity"
    DRAINING = "draining"


@dataclass
class SyncError:
    task_id: Optional[str]
    operation: str
    error: str
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncResult:
    success: bool
    synced_items: int = 0
    failed_items: int = 0
    errors: list[SyncError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "synced_items": self.synced_items,
            "failed_items": self.failed_items,
            "errors": [e.to_dict() for e in self.errors],
        }


class _InflightCycle:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.result: Optional[SyncResult] = None
        self.error: Optional[BaseException] = None


def _batches(items: list[SyncQueueItem], size: int) -> Iterator[list[SyncQueueItem]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _match_verdicts(
    batch: list[SyncQueueItem],
    verdicts: list[ProcessedItem],
) -> list[tuple[SyncQueueItem, ProcessedItem]]:
    """Pair each submitted item with exactly one verdict, in submission order.

    A task may appear several times in one batch; its verdicts are consumed
    in order.  Any count mismatch or unknown ``client_id`` is an integrity
    failure for the whole batch.
    """
    if len(verdicts) != len(batch):
        raise IntegrityMismatch(f"Expected {len(batch)} verdicts, got {len(verdicts)}")
    waiting: dict[str, deque[int]] = defaultdict(deque)
    for idx, item in enumerate(batch):
        waiting[item.task_id].append(idx)
    paired: list[tuple[int, ProcessedItem]] = []
    for verdict in verdicts:
        slots = waiting.get(verdict.client_id)
        if not slots:
            raise IntegrityMismatch(f"Unexpected verdict for client_id {verdict.client_id!r}")
        paired.append((slots.popleft(), verdict))
    paired.sort(key=lambda pair: pair[0])
    return [(batch[idx], verdict) for idx, verdict in paired]


class SyncEngine:
    """Drain the sync queue in batches and settle per-item verdicts.

    Args:
        store: The task store holding tasks and the sync queue.
        config: Injected sync configuration.
        remote: Authority client; built from *config* when omitted.
    """

    def __init__(
        self,
        store: TaskStore,
        config: SyncConfig,
        remote: Optional[RemoteAuthority] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.remote = remote if remote is not None else RemoteAuthority(config)
        self.state = SyncState.IDLE
        self._cycle_lock = threading.Lock()
        self._inflight: Optional[_InflightCycle] = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def check_connectivity(self) -> bool:
        """Probe the authority.  Never raises; any failure reads as offline."""
        try:
            return self.remote.health()
        except Exception:
            logger.opt(exception=True).warning("Connectivity probe raised unexpectedly")
            return False

    def queue_depth(self) -> int:
        return self.store.queue_depth()

    def last_synced_at(self) -> Optional[str]:
        return self.store.last_synced_at()

    def status(self) -> dict[str, Any]:
        return {
            "pending": self.queue_depth(),
            "last_synced_at": self.last_synced_at(),
            "online": self.check_connectivity(),
            "state": self.state.value,
        }

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_sync_cycle(self) -> SyncResult:
        """Run one reconciliation cycle, or join the one already running.

        Only one cycle drains the queue at a time.  A caller arriving while a
        cycle is in flight blocks until it finishes and receives the same
        result (or the same exception).
        """
        with self._cycle_lock:
            inflight = self._inflight
            owner = inflight is None
            if owner:
                inflight = self._inflight = _InflightCycle()
        assert inflight is not None

        if not owner:
            logger.info("Sync cycle already in flight; joining it")
            inflight.done.wait()
            if inflight.error is not None:
                raise inflight.error
            assert inflight.result is not None
            return inflight.result

        try:
            inflight.result = self._run_cycle()
            return inflight.result
        except BaseException as exc:
            inflight.error = exc
            raise
        finally:
            self.state = SyncState.IDLE
            with self._cycle_lock:
                self._inflight = None
            inflight.done.set()

    def _run_cycle(self) -> SyncResult:
        queue = self.store.read_queue()
        if not queue:
            return SyncResult(success=True)

        self.state = SyncState.CHECKING_CONNECTIVITY
        if not self.check_connectivity():
            logger.warning("Remote authority unreachable at {}; {} item(s) left queued", self.config.api_base_url, len(queue))
            return SyncResult(
                success=False,
                errors=[SyncError(task_id=None, operation="connectivity", error="Remote authority unreachable")],
            )

        self.state = SyncState.DRAINING
        result = SyncResult(success=True)
        logger.info("Sync cycle started: {} queued item(s), batch size {}", len(queue), self.config.batch_size)
        for number, batch in enumerate(_batches(queue, self.config.batch_size)):
            budget = self.config.max_batches_per_cycle
            if budget is not None and number >= budget:
                logger.info("Cycle budget of {} batch(es) reached; deferring the rest", budget)
                break
            self._process_batch(batch, result)

        result.success = result.failed_items == 0
        logger.info(
            "Sync cycle finished: synced={} failed={}",
            result.synced_items,
            result.failed_items,
        )
        return result

    def _process_batch(self, batch: list[SyncQueueItem], result: SyncResult) -> None:
        request = BatchSyncRequest.for_items(batch)
        try:
            response = self.remote.send_batch(request)
            pairs = _match_verdicts(batch, response.processed_items)
        except TransportError as exc:
            logger.warning("Batch of {} item(s) failed: {}", len(batch), exc)
            self._fail_batch(batch, str(exc) or exc.__class__.__name__, result)
            return

        for item, verdict in pairs:
            if verdict.status == "success":
                self._settle(item, verdict.server_id)
                result.synced_items += 1
            elif verdict.status == "conflict":
                try:
                    self._settle_conflict(item, verdict)
                    result.synced_items += 1
                except ConflictUnresolved as exc:
                    logger.warning("{}", exc)
                    self._fail_item(item, str(exc), "conflict", result)
            else:
                self._fail_item(item, verdict.error or UNKNOWN_SYNC_ERROR, item.operation.value, result)

    # ------------------------------------------------------------------
    # Settlement (each call is one store transaction)
    # ------------------------------------------------------------------

    def _mark_synced(self, tx: _StoreTx, item: SyncQueueItem, task: Task, server_id: Optional[str]) -> None:
        tx.queue.remove(item.id)
        task.last_synced_at = _now_iso()
        if server_id:
            task.server_id = server_id
        # A newer mutation enqueued after this item keeps its own obligation.
        if not tx.queue.for_task(task.id):
            task.sync_status = SyncStatus.SYNCED
        tx.tasks.put(task)

    def _settle(self, item: SyncQueueItem, server_id: Optional[str]) -> None:
        with self.store.transaction() as tx:
            task = tx.tasks.get(item.task_id)
            if task is None:
                logger.warning("Accepted item {} refers to missing task {}; dropping it", item.id, item.task_id)
                tx.queue.remove(item.id)
                return
            self._mark_synced(tx, item, task, server_id)
        logger.debug("Synced task {} ({})", item.task_id, item.operation.value)

    def _settle_conflict(self, item: SyncQueueItem, verdict: ProcessedItem) -> None:
        if verdict.resolved_data is None:
            raise ConflictUnresolved(item.task_id, "no resolved_data in response")
        try:
            remote = TaskPayload.model_validate(verdict.resolved_data).to_task()
        except PydanticValidationError as exc:
            raise ConflictUnresolved(item.task_id, f"invalid resolved_data ({exc.error_count()} error(s))") from exc

        with self.store.transaction() as tx:
            local = tx.tasks.get(item.task_id)
            if local is None:
                raise ConflictUnresolved(item.task_id, "local task no longer exists")
            resolution = resolve_conflict(local, remote)
            if resolution.winner == Winner.REMOTE:
                for name in _CONTENT_FIELDS:
                    setattr(local, name, getattr(remote, name))
            self._mark_synced(tx, item, local, verdict.server_id or remote.server_id)
        logger.info("Conflict on task {} resolved: {}", item.task_id, resolution.reason)

    def _record_failure(self, tx: _StoreTx, item: SyncQueueItem) -> None:
        task = tx.tasks.get(item.task_id)
        if task is not None:
            task.sync_status = SyncStatus.ERROR
            tx.tasks.put(task)
        live = tx.queue.get(item.id)
        if live is None:
            return
        live.retry_count += 1
        tx.queue.touch(live)
        limit = self.config.max_retries
        if limit is not None and live.retry_count >= limit:
            tx.queue.remove(live.id)
            logger.warning(
                "Dropping queue item {} for task {} after {} failed attempt(s)",
                live.id,
                live.task_id,
                live.retry_count,
            )

    def _fail_item(self, item: SyncQueueItem, message: str, operation: str, result: SyncResult) -> None:
        with self.store.transaction() as tx:
            self._record_failure(tx, item)
        result.failed_items += 1
        result.errors.append(SyncError(task_id=item.task_id, operation=operation, error=message))
        logger.debug("Task {} rejected: {}", item.task_id, message)

    def _fail_batch(self, batch: list[SyncQueueItem], message: str, result: SyncResult) -> None:
        with self.store.transaction() as tx:
            for item in batch:
                self._record_failure(tx, item)
        for item in batch:
            result.failed_items += 1
            result.errors.append(SyncError(task_id=item.task_id, operation=item.operation.value, error=message))
