"""Terminal archive for mutations that exhausted their retries."""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional, Protocol

from ..storage.database import Database
from .models import DeadLetterEntry, Operation

logger = logging.getLogger("tasksync.sync.dead_letter")


class DeadLetterStore(Protocol):
    def add(self, entry: DeadLetterEntry) -> None: ...

    def get(self, entry_id: str) -> Optional[DeadLetterEntry]: ...

    def list_entries(self, task_id: Optional[str] = None) -> List[DeadLetterEntry]: ...

    def remove(self, entry_id: str) -> None: ...

    def count(self) -> int: ...


class SQLiteDeadLetterStore:
    """SQLite-backed dead-letter queue. Entries are only removed by an operator."""

    def __init__(self, db: Database):
        self._db = db

    def add(self, entry: DeadLetterEntry) -> None:
        self._db.execute(
            """
            INSERT INTO dead_letter_queue (id, task_id, operation, payload, error_message, attempts, failed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.id,
                entry.task_id,
                entry.operation.value,
                entry.payload,
                entry.error_message,
                entry.attempts,
                entry.failed_at,
            ),
        )
        logger.warning(
            "Dead-lettered %s for task %s after %d attempts: %s",
            entry.operation.value,
            entry.task_id,
            entry.attempts,
            entry.error_message,
        )

    def get(self, entry_id: str) -> Optional[DeadLetterEntry]:
        row = self._db.fetchone("SELECT * FROM dead_letter_queue WHERE id = ?", (entry_id,))
        return _row_to_entry(row) if row else None

    def list_entries(self, task_id: Optional[str] = None) -> List[DeadLetterEntry]:
        if task_id is None:
            rows = self._db.fetchall("SELECT * FROM dead_letter_queue ORDER BY failed_at ASC")
        else:
            rows = self._db.fetchall(
                "SELECT * FROM dead_letter_queue WHERE task_id = ? ORDER BY failed_at ASC",
                (task_id,),
            )
        return [_row_to_entry(row) for row in rows]

    def remove(self, entry_id: str) -> None:
        self._db.execute("DELETE FROM dead_letter_queue WHERE id = ?", (entry_id,))

    def count(self) -> int:
        row = self._db.fetchone("SELECT COUNT(*) AS count FROM dead_letter_queue")
        return int(row["count"]) if row else 0


def _row_to_entry(row: sqlite3.Row) -> DeadLetterEntry:
    return DeadLetterEntry(
        id=row["id"],
        task_id=row["task_id"],
        operation=Operation(row["operation"]),
        payload=row["payload"],
        error_message=row["error_message"] or "",
        failed_at=row["failed_at"],
        attempts=int(row["attempts"] or 0),
    )


__all__ = ["DeadLetterStore", "SQLiteDeadLetterStore"]
