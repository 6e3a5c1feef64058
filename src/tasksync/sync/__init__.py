"""Batch reconciliation of the local sync queue with the remote authority."""

from .engine import SyncEngine, SyncError, SyncResult, SyncState
from .remote import RemoteAuthority
from .resolver import Resolution, Winner, resolve_conflict

__all__ = [
    "RemoteAuthority",
    "Resolution",
    "SyncEngine",
    "SyncError",
    "SyncResult",
    "SyncState",
    "Winner",
    "resolve_conflict",
]
