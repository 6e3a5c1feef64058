"""Pydantic models for the batch sync protocol.

Request: ``POST /sync/batch`` with :class:`BatchSyncRequest`.
Response: :class:`BatchSyncResponse`, one :class:`ProcessedItem` per
submitted queue item, matched by ``client_id == task_id``.
"""

from __future__ import annotations

from hashlib import sha256
from typing import Any, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..task_engine.model import SyncQueueItem, Task
from ..utils import _now_iso, _parse_iso


def batch_checksum(item_ids: Iterable[str]) -> str:
    """Integrity token for a batch: SHA-256 over the ordered item ids."""
    return sha256("\n".join(item_ids).encode("utf-8")).hexdigest()


class TaskPayload(BaseModel):
    """A task as it travels over the wire."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str
    title: str = ""
    description: str = ""
    completed: bool = False
    created_at: str
    updated_at: str
    is_deleted: bool = False
    sync_status: str = "pending"
    server_id: Optional[str] = None
    last_synced_at: Optional[str] = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _require_timestamp(cls, value: Any) -> str:
        if _parse_iso(value if isinstance(value, str) else str(value or "")) is None:
            raise ValueError(f"not an ISO-8601 timestamp: {value!r}")
        return str(value)

    @classmethod
    def from_task(cls, task: Task) -> "TaskPayload":
        return cls.model_validate(task.to_dict())

    def to_task(self) -> Task:
        return Task.from_dict(self.model_dump())


class QueueItemPayload(BaseModel):
    id: str
    task_id: str
    operation: Literal["create", "update", "delete"]
    data: TaskPayload
    created_at: str
    retry_count: int = 0

    @classmethod
    def from_item(cls, item: SyncQueueItem) -> "QueueItemPayload":
        return cls.model_validate(item.to_dict())


class BatchSyncRequest(BaseModel):
    items: list[QueueItemPayload]
    client_timestamp: str = Field(default_factory=_now_iso)
    checksum: str

    @classmethod
    def for_items(cls, items: list[SyncQueueItem]) -> "BatchSyncRequest":
        return cls(
            items=[QueueItemPayload.from_item(i) for i in items],
            client_timestamp=_now_iso(),
            checksum=batch_checksum(i.id for i in items),
        )

    def checksum_matches(self) -> bool:
        return self.checksum == batch_checksum(i.id for i in self.items)


class ProcessedItem(BaseModel):
    """The authority's verdict for one submitted item.

    ``status`` is kept as a free string: anything other than ``success`` or
    ``conflict`` is handled as an error verdict.  ``resolved_data`` is left
    untyped here so one bad conflict payload fails only its own item.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    client_id: str
    server_id: Optional[str] = None
    status: str
    resolved_data: Optional[Any] = None
    error: Optional[str] = None


class BatchSyncResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    processed_items: list[ProcessedItem]
