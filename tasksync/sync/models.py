"""Sync data structures shared by the queue, stores and orchestrator."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# Epoch values at or above this are treated as milliseconds (year 5138 in seconds).
EPOCH_MILLIS_THRESHOLD = 10**11


def utc_now() -> str:
    """Current UTC time in the fixed-width form used for every stored timestamp."""
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string or a Unix epoch number (seconds or milliseconds)."""
    if isinstance(value, bool):
        raise TypeError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= EPOCH_MILLIS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, timezone.utc)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_timestamp(value: Any) -> str:
    """Stored form of a textual or numeric timestamp; missing values become now."""
    if value is None or value == "":
        return utc_now()
    return format_timestamp(parse_timestamp(value))


def canonical_json(data: Any) -> str:
    """Serialize to the byte-stable JSON form that batch checksums are computed over."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class SyncStatus(str, Enum):
    """Sync state of a task as seen by the local store."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    SYNCED = "synced"
    ERROR = "error"
    FAILED = "failed"


class Operation(str, Enum):
    """Kind of local mutation carried by a queue entry."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class CycleState(str, Enum):
    """Sync cycle lifecycle states."""
    IDLE = "IDLE"
    CHECKING_CONNECTIVITY = "CHECKING_CONNECTIVITY"
    ABORTED = "ABORTED"
    DRAINING = "DRAINING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@dataclass
class Task:
    """A task record owned by the local task store."""

    id: str
    title: str
    description: str = ""
    completed: bool = False
    is_deleted: bool = False
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    sync_status: SyncStatus = SyncStatus.PENDING
    server_id: Optional[str] = None
    last_synced_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "completed": self.completed,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "sync_status": self.sync_status.value,
            "server_id": self.server_id,
            "last_synced_at": self.last_synced_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=str(data.get("description") or ""),
            completed=bool(data.get("completed", False)),
            is_deleted=bool(data.get("is_deleted", False)),
            created_at=normalize_timestamp(data.get("created_at")),
            updated_at=normalize_timestamp(data.get("updated_at")),
            sync_status=SyncStatus(data.get("sync_status", SyncStatus.PENDING.value)),
            server_id=data.get("server_id"),
            last_synced_at=data.get("last_synced_at"),
        )

    def snapshot(self) -> str:
        """Serialized task state stored in a queue entry."""
        return canonical_json(self.to_dict())

    def with_changes(self, **changes: Any) -> "Task":
        return replace(self, **changes)


@dataclass
class SyncQueueEntry:
    """A pending local mutation awaiting transmission."""

    id: str
    task_id: str
    operation: Operation
    payload: str
    attempts: int = 0
    status: str = "pending"
    created_at: str = field(default_factory=utc_now)
    error_message: Optional[str] = None

    @property
    def data(self) -> Dict[str, Any]:
        return json.loads(self.payload)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "operation": self.operation.value,
            "data": self.data,
        }


@dataclass
class DeadLetterEntry:
    """A mutation that exhausted its retries. Never re-enqueued automatically."""

    id: str
    task_id: str
    operation: Operation
    payload: str
    error_message: str
    failed_at: str = field(default_factory=utc_now)
    attempts: int = 0

    @classmethod
    def from_queue_entry(cls, entry: SyncQueueEntry, error_message: str, attempts: int) -> "DeadLetterEntry":
        return cls(
            id=entry.id,
            task_id=entry.task_id,
            operation=entry.operation,
            payload=entry.payload,
            error_message=error_message,
            attempts=attempts,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "operation": self.operation.value,
            "payload": self.payload,
            "error_message": self.error_message,
            "failed_at": self.failed_at,
            "attempts": self.attempts,
        }


@dataclass
class SyncError:
    """One itemized failure reported in a SyncResult."""

    task_id: str
    operation: Optional[Operation]
    error: str
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "operation": self.operation.value if self.operation else None,
            "error": self.error,
            "timestamp": self.timestamp,
        }


@dataclass
class SyncResult:
    """Aggregate outcome of one sync cycle."""

    success: bool
    synced_items: int = 0
    failed_items: int = 0
    errors: List[SyncError] = field(default_factory=list)
    dropped_items: int = 0
    deferred_items: int = 0
    state: CycleState = CycleState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "synced_items": self.synced_items,
            "failed_items": self.failed_items,
            "errors": [error.to_dict() for error in self.errors],
            "dropped_items": self.dropped_items,
            "deferred_items": self.deferred_items,
            "state": self.state.value,
        }


__all__ = [
    "CycleState",
    "DeadLetterEntry",
    "Operation",
    "SyncError",
    "SyncQueueEntry",
    "SyncResult",
    "SyncStatus",
    "Task",
    "canonical_json",
    "format_timestamp",
    "normalize_timestamp",
    "parse_timestamp",
    "utc_now",
]
