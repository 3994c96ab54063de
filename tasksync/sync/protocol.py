"""Batch sync protocol data structures."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import Operation, SyncQueueEntry

CHECKSUM_MISMATCH_CODE = "checksum_mismatch"


def compute_checksum(entries: Sequence[SyncQueueEntry]) -> str:
    """SHA-256 over each entry's id followed by its serialized payload, in batch order."""
    digest = hashlib.sha256()
    for entry in entries:
        digest.update(entry.id.encode("utf-8"))
        digest.update(entry.payload.encode("utf-8"))
    return digest.hexdigest()


def verify_checksum(entries: Sequence[SyncQueueEntry], checksum: str) -> bool:
    return compute_checksum(entries) == checksum


@dataclass
class BatchRequest:
    """Request body for ``POST /batch``."""

    checksum: str
    items: List[SyncQueueEntry] = field(default_factory=list)

    @classmethod
    def build(cls, entries: Sequence[SyncQueueEntry]) -> "BatchRequest":
        return cls(checksum=compute_checksum(entries), items=list(entries))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "checksum": self.checksum,
            "items": [entry.to_wire() for entry in self.items],
        }


@dataclass
class ItemResult:
    """Outcome of one item as reported by the remote peer."""

    task_id: str
    operation: Optional[Operation]
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_type: str = "transient"  # "transient", "validation"
    conflict: bool = False

    @property
    def permanent(self) -> bool:
        return self.error_type == "validation"

    @property
    def server_id(self) -> Optional[str]:
        if not self.data:
            return None
        value = self.data.get("server_id") or self.data.get("id")
        return str(value) if value is not None else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ItemResult":
        raw_operation = data.get("operation")
        operation = Operation(raw_operation) if raw_operation else None
        payload = data.get("data")
        return cls(
            task_id=str(data.get("task_id", "")),
            operation=operation,
            success=bool(data.get("success", False)),
            data=payload if isinstance(payload, dict) else None,
            error=data.get("error"),
            error_type=str(data.get("error_type") or "transient"),
            conflict=bool(data.get("conflict", False)),
        )


@dataclass
class BatchResult:
    """Response body of ``POST /batch``: one result per item, in request order."""

    success: bool
    results: List[ItemResult] = field(default_factory=list)
    synced_items: int = 0
    failed_items: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BatchResult":
        raw_results = data.get("results", [])
        if not isinstance(raw_results, list):
            raise ValueError(f"'results' must be a list, got {type(raw_results).__name__}")
        for index, item in enumerate(raw_results):
            if not isinstance(item, dict):
                raise ValueError(f"results[{index}] must be an object, got {type(item).__name__}")
        results = [ItemResult.from_dict(item) for item in raw_results]
        return cls(
            success=bool(data.get("success", False)),
            results=results,
            synced_items=int(data.get("synced_items", sum(1 for r in results if r.success))),
            failed_items=int(data.get("failed_items", sum(1 for r in results if not r.success))),
        )

    def is_aligned_with(self, entries: Sequence[SyncQueueEntry]) -> bool:
        if len(self.results) != len(entries):
            return False
        return all(result.task_id == entry.task_id for result, entry in zip(self.results, entries))


def plan_batches(entries: Sequence[SyncQueueEntry], batch_size: int) -> List[List[SyncQueueEntry]]:
    """Split ordered entries into batches holding at most one entry per task.

    Entries keep their ``created_at`` order inside a batch. An entry whose task
    already has an entry in an earlier (or the current) batch is placed in a
    later one, so operations on the same task are never in flight together.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    batches: List[List[SyncQueueEntry]] = []
    task_batch: Dict[str, int] = {}
    cursor = 0  # first batch with free room

    for entry in entries:
        index = max(task_batch.get(entry.task_id, -1) + 1, cursor)
        while index < len(batches) and len(batches[index]) >= batch_size:
            index += 1
        if index == len(batches):
            batches.append([])
        batches[index].append(entry)
        task_batch[entry.task_id] = index
        while cursor < len(batches) and len(batches[cursor]) >= batch_size:
            cursor += 1

    return batches


__all__ = [
    "BatchRequest",
    "BatchResult",
    "CHECKSUM_MISMATCH_CODE",
    "ItemResult",
    "compute_checksum",
    "plan_batches",
    "verify_checksum",
]
