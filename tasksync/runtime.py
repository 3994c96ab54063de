"""Wires configuration, storage and the sync engine into one runtime object."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .configuration import ConfigurationBundle
from .storage import Database, SQLiteTaskStore
from .sync import (
    AutoSyncScheduler,
    ConnectivityProbe,
    ConnectivitySettings,
    RemoteSettings,
    RemoteSyncClient,
    SQLiteDeadLetterStore,
    SQLiteSyncQueueStore,
    SyncOrchestrator,
    SyncSettings,
    requeue_dead_letter,
)

logger = logging.getLogger("tasksync.runtime")


@dataclass
class SyncRuntime:
    """Everything a caller (CLI, HTTP surface, tests) needs to drive sync."""

    config: ConfigurationBundle
    db: Database
    queue: SQLiteSyncQueueStore
    dead_letters: SQLiteDeadLetterStore
    tasks: SQLiteTaskStore
    client: RemoteSyncClient
    probe: ConnectivityProbe
    orchestrator: SyncOrchestrator
    scheduler: AutoSyncScheduler

    def status(self) -> Dict[str, Any]:
        snapshot = self.orchestrator.status()
        snapshot["auto_sync"] = self.scheduler.running
        return snapshot

    def requeue(self, dead_letter_id: str) -> Optional[str]:
        return requeue_dead_letter(
            dead_letter_id,
            self.dead_letters,
            self.queue,
            self.tasks,
            transaction=self.db.transaction,
        )

    def close(self) -> None:
        self.scheduler.stop()
        self.db.close()


def resolve_database_path(bundle: ConfigurationBundle) -> Path:
    raw = str(bundle.section("storage").get("database") or "state/tasksync.sqlite3")
    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = bundle.data_dir / path
    return path


def build_runtime(
    bundle: ConfigurationBundle,
    database: Optional[Database] = None,
    client: Optional[RemoteSyncClient] = None,
    probe: Optional[ConnectivityProbe] = None,
) -> SyncRuntime:
    """Build the sync runtime described by ``bundle``.

    ``database``, ``client`` and ``probe`` may be supplied to swap in
    in-memory storage or fake transports.
    """

    db = (database or Database(resolve_database_path(bundle))).initialize()
    queue = SQLiteSyncQueueStore(db)
    dead_letters = SQLiteDeadLetterStore(db)
    tasks = SQLiteTaskStore(db, queue)

    remote_client = client or RemoteSyncClient(RemoteSettings.from_bundle(bundle))
    connectivity = probe or ConnectivityProbe(ConnectivitySettings.from_bundle(bundle), remote_client)
    settings = SyncSettings.from_bundle(bundle)

    orchestrator = SyncOrchestrator(
        queue=queue,
        dead_letters=dead_letters,
        tasks=tasks,
        client=remote_client,
        probe=connectivity,
        settings=settings,
        transaction=db.transaction,
    )
    scheduler = AutoSyncScheduler(orchestrator, settings.auto_interval)

    logger.info(
        "Sync runtime ready: remote=%s batch_size=%d max_attempts=%d mode=%s",
        remote_client.base_url,
        settings.batch_size,
        settings.max_attempts,
        settings.dispatch_mode,
    )
    return SyncRuntime(
        config=bundle,
        db=db,
        queue=queue,
        dead_letters=dead_letters,
        tasks=tasks,
        client=remote_client,
        probe=connectivity,
        orchestrator=orchestrator,
        scheduler=scheduler,
    )


__all__ = ["SyncRuntime", "build_runtime", "resolve_database_path"]
