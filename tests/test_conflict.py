"""Tests for last-writer-wins conflict resolution."""

from __future__ import annotations

from tasksync.sync import ConflictReason, ConflictResolver, Task
from tasksync.sync.conflict import resolve

EARLY = "2024-05-01T10:00:00.000000+00:00"
LATE = "2024-05-01T10:00:00.000001+00:00"


def _task(title: str, updated_at: str, is_deleted: bool = False) -> Task:
    return Task(id="t1", title=title, updated_at=updated_at, is_deleted=is_deleted)


def test_newer_local_wins():
    local = _task("local", LATE)
    remote = _task("remote", EARLY)

    assert resolve(local, remote) is local
    assert ConflictResolver().explain(local, remote).reason is ConflictReason.LOCAL_NEWER


def test_newer_remote_wins():
    local = _task("local", EARLY)
    remote = _task("remote", LATE)

    resolution = ConflictResolver().explain(local, remote)

    assert resolution.winner is remote
    assert resolution.local_wins is False


def test_tie_prefers_deleted_local():
    local = _task("local", EARLY, is_deleted=True)
    remote = _task("remote", EARLY)

    assert resolve(local, remote) is local


def test_tie_prefers_deleted_remote():
    local = _task("local", EARLY)
    remote = _task("remote", EARLY, is_deleted=True)

    resolution = ConflictResolver().explain(local, remote)

    assert resolution.winner is remote
    assert resolution.reason is ConflictReason.REMOTE_DELETED


def test_full_tie_keeps_local():
    local = _task("local", EARLY)
    remote = _task("remote", EARLY)

    resolution = ConflictResolver().explain(local, remote)

    assert resolution.winner is local
    assert resolution.reason is ConflictReason.TIE_PREFER_LOCAL


def test_timestamps_compare_across_offsets():
    local = _task("local", "2024-05-01T12:00:00+02:00")
    remote = _task("remote", "2024-05-01T10:30:00Z")

    assert resolve(local, remote) is remote
