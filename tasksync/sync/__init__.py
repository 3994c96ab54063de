"""Offline-first task synchronization engine."""

from __future__ import annotations

from .models import (
    CycleState,
    DeadLetterEntry,
    Operation,
    SyncError,
    SyncQueueEntry,
    SyncResult,
    SyncStatus,
    Task,
)
from .errors import (
    ChecksumMismatchError,
    ConnectivityError,
    RemoteError,
    StaleReferenceError,
    SyncEngineError,
    SyncInProgressError,
    TransientRemoteError,
    ValidationRemoteError,
)
from .queue import SyncQueueStore, SQLiteSyncQueueStore
from .dead_letter import DeadLetterStore, SQLiteDeadLetterStore
from .protocol import BatchRequest, BatchResult, ItemResult, compute_checksum, plan_batches
from .client import RemoteSettings, RemoteSyncClient
from .connectivity import ConnectivityProbe, ConnectivitySettings
from .conflict import ConflictReason, ConflictResolution, ConflictResolver
from .policy import FailureTransition, RetryPolicy
from .orchestrator import SyncOrchestrator, SyncSettings
from .scheduler import AutoSyncScheduler
from .recovery import requeue_dead_letter

__all__ = [
    # Models
    "CycleState",
    "DeadLetterEntry",
    "Operation",
    "SyncError",
    "SyncQueueEntry",
    "SyncResult",
    "SyncStatus",
    "Task",
    # Errors
    "ChecksumMismatchError",
    "ConnectivityError",
    "RemoteError",
    "StaleReferenceError",
    "SyncEngineError",
    "SyncInProgressError",
    "TransientRemoteError",
    "ValidationRemoteError",
    # Stores
    "SyncQueueStore",
    "SQLiteSyncQueueStore",
    "DeadLetterStore",
    "SQLiteDeadLetterStore",
    # Protocol
    "BatchRequest",
    "BatchResult",
    "ItemResult",
    "compute_checksum",
    "plan_batches",
    # Transport
    "RemoteSettings",
    "RemoteSyncClient",
    "ConnectivityProbe",
    "ConnectivitySettings",
    # Policy
    "ConflictReason",
    "ConflictResolution",
    "ConflictResolver",
    "FailureTransition",
    "RetryPolicy",
    # Orchestration
    "AutoSyncScheduler",
    "SyncOrchestrator",
    "SyncSettings",
    "requeue_dead_letter",
]
