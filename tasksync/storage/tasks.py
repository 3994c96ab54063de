"""SQLite task store.

Every local mutation (create / update / soft delete) writes the task row and
appends a sync queue entry inside one transaction, so the queue never misses a
change and never carries one the task table does not have.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol

from ..sync.models import Operation, SyncStatus, Task, utc_now
from .database import Database

if TYPE_CHECKING:
    from ..sync.queue import SyncQueueStore

logger = logging.getLogger("tasksync.storage.tasks")

EDITABLE_FIELDS = ("title", "description", "completed")


class TaskStore(Protocol):
    def create_local(self, title: str, description: str = "", completed: bool = False) -> Task: ...

    def update_local(self, task_id: str, patch: Mapping[str, Any]) -> Optional[Task]: ...

    def soft_delete_local(self, task_id: str) -> bool: ...

    def get(self, task_id: str, include_deleted: bool = False) -> Optional[Task]: ...

    def get_pending_sync_tasks(self) -> List[Task]: ...

    def mark_synced(self, task_id: str, server_id: Optional[str] = None) -> None: ...

    def set_sync_status(self, task_id: str, status: SyncStatus) -> None: ...

    def purge(self, task_id: str) -> None: ...

    def apply_remote(self, task: Task) -> None: ...

    def last_synced_at(self) -> Optional[str]: ...


class SQLiteTaskStore:
    """Task table plus the enqueue side effect of each local mutation."""

    def __init__(self, db: Database, queue: SyncQueueStore):
        self._db = db
        self._queue = queue

    # ---- local mutations ----

    def create_local(self, title: str, description: str = "", completed: bool = False) -> Task:
        now = utc_now()
        task = Task(
            id=str(uuid.uuid4()),
            title=title,
            description=description,
            completed=completed,
            created_at=now,
            updated_at=now,
        )
        with self._db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO tasks (
                    id, title, description, completed, is_deleted,
                    created_at, updated_at, sync_status, server_id, last_synced_at
                )
                VALUES (?, ?, ?, ?, 0, ?, ?, ?, NULL, NULL)
                """,
                (
                    task.id,
                    task.title,
                    task.description,
                    int(task.completed),
                    task.created_at,
                    task.updated_at,
                    task.sync_status.value,
                ),
            )
            self._queue.enqueue(task.id, Operation.CREATE, task.snapshot())
        logger.info("Created task %s", task.id)
        return task

    def update_local(self, task_id: str, patch: Mapping[str, Any]) -> Optional[Task]:
        changes: Dict[str, Any] = {key: patch[key] for key in EDITABLE_FIELDS if key in patch}
        with self._db.transaction() as conn:
            existing = self.get(task_id)
            if existing is None:
                return None
            if "completed" in changes:
                changes["completed"] = bool(changes["completed"])
            updated = existing.with_changes(
                updated_at=utc_now(),
                sync_status=SyncStatus.PENDING,
                **changes,
            )
            conn.execute(
                """
                UPDATE tasks
                SET title = ?, description = ?, completed = ?, updated_at = ?, sync_status = ?
                WHERE id = ?
                """,
                (
                    updated.title,
                    updated.description,
                    int(updated.completed),
                    updated.updated_at,
                    updated.sync_status.value,
                    task_id,
                ),
            )
            self._queue.enqueue(task_id, Operation.UPDATE, updated.snapshot())
        logger.info("Updated task %s (%s)", task_id, ", ".join(sorted(changes)) or "touch")
        return updated

    def soft_delete_local(self, task_id: str) -> bool:
        with self._db.transaction() as conn:
            existing = self.get(task_id)
            if existing is None:
                return False
            tombstone = existing.with_changes(
                is_deleted=True,
                updated_at=utc_now(),
                sync_status=SyncStatus.PENDING,
            )
            conn.execute(
                "UPDATE tasks SET is_deleted = 1, updated_at = ?, sync_status = ? WHERE id = ?",
                (tombstone.updated_at, tombstone.sync_status.value, task_id),
            )
            self._queue.enqueue(task_id, Operation.DELETE, tombstone.snapshot())
        logger.info("Soft-deleted task %s", task_id)
        return True

    # ---- reads ----

    def get(self, task_id: str, include_deleted: bool = False) -> Optional[Task]:
        row = self._db.fetchone("SELECT * FROM tasks WHERE id = ?", (task_id,))
        if row is None:
            return None
        task = _row_to_task(row)
        if task.is_deleted and not include_deleted:
            return None
        return task

    def list_tasks(self, include_deleted: bool = False) -> List[Task]:
        sql = "SELECT * FROM tasks"
        if not include_deleted:
            sql += " WHERE is_deleted = 0"
        sql += " ORDER BY updated_at DESC"
        return [_row_to_task(row) for row in self._db.fetchall(sql)]

    def get_pending_sync_tasks(self) -> List[Task]:
        """Tasks (tombstones included) whose latest change has not been confirmed."""
        rows = self._db.fetchall(
            """
            SELECT * FROM tasks
            WHERE sync_status IN (?, ?)
            ORDER BY updated_at ASC
            """,
            (SyncStatus.PENDING.value, SyncStatus.ERROR.value),
        )
        return [_row_to_task(row) for row in rows]

    def last_synced_at(self) -> Optional[str]:
        row = self._db.fetchone(
            "SELECT MAX(last_synced_at) AS last_sync FROM tasks WHERE last_synced_at IS NOT NULL"
        )
        return row["last_sync"] if row else None

    def count(self, include_deleted: bool = False) -> int:
        sql = "SELECT COUNT(*) AS count FROM tasks"
        if not include_deleted:
            sql += " WHERE is_deleted = 0"
        row = self._db.fetchone(sql)
        return int(row["count"]) if row else 0

    # ---- sync bookkeeping ----

    def mark_synced(self, task_id: str, server_id: Optional[str] = None) -> None:
        # updated_at is left alone: it is the conflict-resolution clock.
        self._db.execute(
            """
            UPDATE tasks
            SET sync_status = ?, server_id = COALESCE(?, server_id), last_synced_at = ?
            WHERE id = ?
            """,
            (SyncStatus.SYNCED.value, server_id, utc_now(), task_id),
        )

    def set_sync_status(self, task_id: str, status: SyncStatus) -> None:
        self._db.execute(
            "UPDATE tasks SET sync_status = ? WHERE id = ?",
            (SyncStatus(status).value, task_id),
        )

    def purge(self, task_id: str) -> None:
        """Drop a tombstone once its delete has been confirmed by the remote peer."""
        self._db.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        logger.debug("Purged tombstone %s", task_id)

    def apply_remote(self, task: Task) -> None:
        """Overwrite the local row with a remote version that won conflict resolution."""
        now = utc_now()
        self._db.execute(
            """
            INSERT INTO tasks (
                id, title, description, completed, is_deleted,
                created_at, updated_at, sync_status, server_id, last_synced_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                description = excluded.description,
                completed = excluded.completed,
                is_deleted = excluded.is_deleted,
                updated_at = excluded.updated_at,
                sync_status = excluded.sync_status,
                server_id = COALESCE(excluded.server_id, tasks.server_id),
                last_synced_at = excluded.last_synced_at
            """,
            (
                task.id,
                task.title,
                task.description,
                int(task.completed),
                int(task.is_deleted),
                task.created_at,
                task.updated_at,
                SyncStatus.SYNCED.value,
                task.server_id,
                now,
            ),
        )


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"] or "",
        completed=bool(row["completed"]),
        is_deleted=bool(row["is_deleted"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        sync_status=SyncStatus(row["sync_status"] or SyncStatus.PENDING.value),
        server_id=row["server_id"],
        last_synced_at=row["last_synced_at"],
    )


__all__ = ["EDITABLE_FIELDS", "SQLiteTaskStore", "TaskStore"]
