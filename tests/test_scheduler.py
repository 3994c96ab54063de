"""Tests for the background auto-sync timer."""

from __future__ import annotations

import threading

from tasksync.runtime import SyncRuntime
from tasksync.sync import AutoSyncScheduler

from .fakes import batch_of, ok


def test_zero_interval_disables_scheduler(runtime: SyncRuntime):
    scheduler = AutoSyncScheduler(runtime.orchestrator, 0)

    assert scheduler.start() is False
    assert scheduler.running is False


def test_run_once_syncs_pending_entries(runtime: SyncRuntime, client):
    runtime.tasks.create_local("tick")
    scheduler = AutoSyncScheduler(runtime.orchestrator, 60)

    scheduler.run_once()

    assert scheduler.ticks == 1
    assert runtime.queue.count() == 0
    assert len(client.batches) == 1


def test_tick_during_running_cycle_is_skipped(runtime: SyncRuntime, client):
    runtime.tasks.create_local("busy")
    scheduler = AutoSyncScheduler(runtime.orchestrator, 60)

    def _tick_while_busy(items, checksum):
        scheduler.run_once()
        return batch_of([ok(e) for e in items])

    client.batch_handler = _tick_while_busy
    runtime.orchestrator.sync()

    assert scheduler.ticks == 1
    assert scheduler.skipped == 1
    assert len(client.batches) == 1


def test_background_thread_runs_and_stops(runtime: SyncRuntime, client):
    runtime.tasks.create_local("background")
    synced = threading.Event()

    def _record(items, checksum):
        synced.set()
        return batch_of([ok(e) for e in items])

    client.batch_handler = _record
    scheduler = AutoSyncScheduler(runtime.orchestrator, 0.01)

    assert scheduler.start() is True
    assert synced.wait(5)
    scheduler.stop()

    assert scheduler.running is False
    assert scheduler.ticks >= 1
