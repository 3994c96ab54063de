"""Durable, ordered queue of local mutations awaiting transmission."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import List, Optional, Protocol

from ..storage.database import Database
from .models import Operation, SyncQueueEntry, utc_now

logger = logging.getLogger("tasksync.sync.queue")


class SyncQueueStore(Protocol):
    """Narrow repository interface the orchestrator depends on."""

    def enqueue(self, task_id: str, operation: Operation, payload: str) -> str: ...

    def dequeue_eligible(self, limit: Optional[int], max_attempts: int) -> List[SyncQueueEntry]: ...

    def record_success(self, entry_id: str) -> None: ...

    def record_failure(self, entry_id: str, error_message: str) -> int: ...

    def get(self, entry_id: str) -> Optional[SyncQueueEntry]: ...

    def delete(self, entry_id: str) -> None: ...

    def count(self) -> int: ...

    def count_for_task(self, task_id: str) -> int: ...

    def list_entries(self) -> List[SyncQueueEntry]: ...


class SQLiteSyncQueueStore:
    """SQLite-backed sync queue.

    Rows are append-only: ``enqueue`` never overwrites, so several entries for
    the same task coexist and dispatch in ``created_at`` order (rowid breaks
    ties between entries created within the same microsecond).
    """

    def __init__(self, db: Database):
        self._db = db

    def enqueue(self, task_id: str, operation: Operation, payload: str) -> str:
        entry_id = uuid.uuid4().hex
        self._db.execute(
            """
            INSERT INTO sync_queue (id, task_id, operation, payload, attempts, status, created_at)
            VALUES (?, ?, ?, ?, 0, 'pending', ?)
            """,
            (entry_id, task_id, Operation(operation).value, payload, utc_now()),
        )
        logger.debug("Enqueued %s for task %s as %s", operation.value, task_id, entry_id)
        return entry_id

    def dequeue_eligible(self, limit: Optional[int], max_attempts: int) -> List[SyncQueueEntry]:
        sql = """
            SELECT * FROM sync_queue
            WHERE attempts < ?
            ORDER BY created_at ASC, rowid ASC
        """
        params: List[object] = [max_attempts]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [_row_to_entry(row) for row in self._db.fetchall(sql, params)]

    def record_success(self, entry_id: str) -> None:
        self._db.execute("DELETE FROM sync_queue WHERE id = ?", (entry_id,))

    def record_failure(self, entry_id: str, error_message: str) -> int:
        with self._db.transaction() as conn:
            conn.execute(
                """
                UPDATE sync_queue
                SET attempts = attempts + 1, error_message = ?, status = 'error'
                WHERE id = ?
                """,
                (error_message, entry_id),
            )
            row = conn.execute("SELECT attempts FROM sync_queue WHERE id = ?", (entry_id,)).fetchone()
        if row is None:
            raise KeyError(entry_id)
        return int(row["attempts"])

    def get(self, entry_id: str) -> Optional[SyncQueueEntry]:
        row = self._db.fetchone("SELECT * FROM sync_queue WHERE id = ?", (entry_id,))
        return _row_to_entry(row) if row else None

    def delete(self, entry_id: str) -> None:
        self._db.execute("DELETE FROM sync_queue WHERE id = ?", (entry_id,))

    def count(self) -> int:
        row = self._db.fetchone("SELECT COUNT(*) AS count FROM sync_queue")
        return int(row["count"]) if row else 0

    def count_for_task(self, task_id: str) -> int:
        row = self._db.fetchone(
            "SELECT COUNT(*) AS count FROM sync_queue WHERE task_id = ?",
            (task_id,),
        )
        return int(row["count"]) if row else 0

    def list_entries(self) -> List[SyncQueueEntry]:
        rows = self._db.fetchall("SELECT * FROM sync_queue ORDER BY created_at ASC, rowid ASC")
        return [_row_to_entry(row) for row in rows]


def _row_to_entry(row: sqlite3.Row) -> SyncQueueEntry:
    return SyncQueueEntry(
        id=row["id"],
        task_id=row["task_id"],
        operation=Operation(row["operation"]),
        payload=row["payload"],
        attempts=int(row["attempts"] or 0),
        status=row["status"] or "pending",
        created_at=row["created_at"],
        error_message=row["error_message"],
    )


__all__ = ["SyncQueueStore", "SQLiteSyncQueueStore"]
