"""Tests for the SQLite database wrapper, task store, sync queue and dead-letter store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tasksync.storage import Database, SQLiteTaskStore
from tasksync.sync import (
    DeadLetterEntry,
    Operation,
    SQLiteDeadLetterStore,
    SQLiteSyncQueueStore,
    SyncStatus,
    Task,
)


def test_database_creates_schema_on_disk(tmp_path: Path):
    path = tmp_path / "state" / "tasks.sqlite3"
    db = Database(path).initialize()

    tables = {row["name"] for row in db.fetchall("SELECT name FROM sqlite_master WHERE type = 'table'")}

    assert {"tasks", "sync_queue", "dead_letter_queue"} <= tables
    assert path.exists()
    db.close()


def test_nested_transaction_rolls_back_as_one(db: Database, queue: SQLiteSyncQueueStore):
    with pytest.raises(RuntimeError):
        with db.transaction():
            queue.enqueue("t1", Operation.CREATE, "{}")
            with db.transaction():
                queue.enqueue("t2", Operation.CREATE, "{}")
            raise RuntimeError("abort")

    assert queue.count() == 0


def test_create_local_writes_task_and_queue_entry(tasks: SQLiteTaskStore, queue: SQLiteSyncQueueStore):
    task = tasks.create_local("Plan trip", "book flights")

    entries = queue.list_entries()
    assert len(entries) == 1
    assert entries[0].task_id == task.id
    assert entries[0].operation is Operation.CREATE
    assert entries[0].data["title"] == "Plan trip"
    assert tasks.get(task.id).sync_status is SyncStatus.PENDING


def test_create_local_is_atomic(tasks: SQLiteTaskStore, queue: SQLiteSyncQueueStore, monkeypatch):
    def _broken_enqueue(*args):
        raise OSError("disk full")

    monkeypatch.setattr(queue, "enqueue", _broken_enqueue)

    with pytest.raises(OSError):
        tasks.create_local("never stored")

    assert tasks.count(include_deleted=True) == 0


def test_update_local_snapshots_patched_task(tasks: SQLiteTaskStore, queue: SQLiteSyncQueueStore):
    task = tasks.create_local("Draft")

    updated = tasks.update_local(task.id, {"title": "Final", "completed": 1, "server_id": "ignored"})

    assert updated.title == "Final"
    assert updated.completed is True
    assert updated.server_id is None
    assert updated.updated_at >= task.updated_at
    last = queue.list_entries()[-1]
    assert last.operation is Operation.UPDATE
    assert last.data["title"] == "Final"


def test_update_local_ignores_missing_and_deleted_tasks(tasks: SQLiteTaskStore, queue: SQLiteSyncQueueStore):
    task = tasks.create_local("gone")
    tasks.soft_delete_local(task.id)
    queued = queue.count()

    assert tasks.update_local("missing", {"title": "x"}) is None
    assert tasks.update_local(task.id, {"title": "x"}) is None
    assert queue.count() == queued


def test_soft_delete_keeps_tombstone(tasks: SQLiteTaskStore, queue: SQLiteSyncQueueStore):
    task = tasks.create_local("temp")

    assert tasks.soft_delete_local(task.id) is True
    assert tasks.soft_delete_local(task.id) is False

    assert tasks.get(task.id) is None
    tombstone = tasks.get(task.id, include_deleted=True)
    assert tombstone.is_deleted is True
    assert queue.list_entries()[-1].operation is Operation.DELETE
    assert tasks.list_tasks() == []
    assert [t.id for t in tasks.list_tasks(include_deleted=True)] == [task.id]


def test_pending_sync_tasks_include_tombstones_and_errors(tasks: SQLiteTaskStore):
    kept = tasks.create_local("kept")
    removed = tasks.create_local("removed")
    erred = tasks.create_local("erred")
    done = tasks.create_local("done")
    tasks.soft_delete_local(removed.id)
    tasks.set_sync_status(erred.id, SyncStatus.ERROR)
    tasks.mark_synced(done.id)

    pending = {t.id for t in tasks.get_pending_sync_tasks()}

    assert pending == {kept.id, removed.id, erred.id}


def test_mark_synced_keeps_existing_server_id(tasks: SQLiteTaskStore):
    task = tasks.create_local("t")
    tasks.mark_synced(task.id, "srv-1")
    tasks.mark_synced(task.id)

    stored = tasks.get(task.id)
    assert stored.server_id == "srv-1"
    assert stored.sync_status is SyncStatus.SYNCED
    assert stored.updated_at == task.updated_at
    assert tasks.last_synced_at() == stored.last_synced_at


def test_apply_remote_overwrites_local_row(tasks: SQLiteTaskStore):
    task = tasks.create_local("local")
    remote = task.with_changes(title="remote", updated_at="2999-01-01T00:00:00.000000+00:00", server_id="srv-2")

    tasks.apply_remote(remote)

    stored = tasks.get(task.id)
    assert stored.title == "remote"
    assert stored.server_id == "srv-2"
    assert stored.sync_status is SyncStatus.SYNCED


def test_purge_removes_row(tasks: SQLiteTaskStore):
    task = tasks.create_local("t")
    tasks.purge(task.id)

    assert tasks.get(task.id, include_deleted=True) is None


def test_queue_keeps_every_entry_in_creation_order(queue: SQLiteSyncQueueStore):
    first = queue.enqueue("t1", Operation.CREATE, "{}")
    second = queue.enqueue("t1", Operation.UPDATE, "{}")
    third = queue.enqueue("t2", Operation.CREATE, "{}")

    assert [e.id for e in queue.dequeue_eligible(None, 3)] == [first, second, third]
    assert [e.id for e in queue.dequeue_eligible(2, 3)] == [first, second]
    assert queue.count_for_task("t1") == 2


def test_dequeue_eligible_skips_exhausted_entries(queue: SQLiteSyncQueueStore):
    exhausted = queue.enqueue("t1", Operation.CREATE, "{}")
    fresh = queue.enqueue("t2", Operation.CREATE, "{}")
    for _ in range(3):
        queue.record_failure(exhausted, "HTTP 503")

    assert [e.id for e in queue.dequeue_eligible(None, 3)] == [fresh]
    assert queue.count() == 2


def test_record_failure_counts_and_remembers_error(queue: SQLiteSyncQueueStore):
    entry_id = queue.enqueue("t1", Operation.UPDATE, "{}")

    assert queue.record_failure(entry_id, "first") == 1
    assert queue.record_failure(entry_id, "second") == 2

    entry = queue.get(entry_id)
    assert entry.attempts == 2
    assert entry.error_message == "second"
    assert entry.status == "error"


def test_record_failure_on_missing_entry_raises(queue: SQLiteSyncQueueStore):
    with pytest.raises(KeyError):
        queue.record_failure("nope", "boom")


def test_record_success_deletes_entry(queue: SQLiteSyncQueueStore):
    entry_id = queue.enqueue("t1", Operation.CREATE, "{}")
    queue.record_success(entry_id)

    assert queue.get(entry_id) is None
    assert queue.count() == 0


def test_dead_letter_store_round_trip(dead_letters: SQLiteDeadLetterStore, caplog):
    task = Task(id="t1", title="x")
    entry = DeadLetterEntry(
        id="e1",
        task_id=task.id,
        operation=Operation.UPDATE,
        payload=task.snapshot(),
        error_message="HTTP 422",
        attempts=3,
    )

    with caplog.at_level("WARNING", logger="tasksync.sync.dead_letter"):
        dead_letters.add(entry)

    stored = dead_letters.get("e1")
    assert stored == entry
    assert json.loads(stored.payload)["id"] == "t1"
    assert dead_letters.list_entries(task_id="other") == []
    assert dead_letters.count() == 1
    assert any("Dead-lettered" in record.getMessage() for record in caplog.records)

    dead_letters.remove("e1")
    assert dead_letters.count() == 0
