# tests/conftest.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tasksync.configuration import ConfigurationBundle, load_runtime_configuration
from tasksync.runtime import SyncRuntime, build_runtime
from tasksync.storage import Database, SQLiteTaskStore
from tasksync.sync import SQLiteDeadLetterStore, SQLiteSyncQueueStore

from .fakes import FakeProbe, FakeRemoteClient


@pytest.fixture(autouse=True)
def _restore_tasksync_logger():
    """setup_logging() detaches the package logger from root; undo that between tests."""
    yield
    logger = logging.getLogger("tasksync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture()
def db() -> Database:
    database = Database(":memory:").initialize()
    yield database
    database.close()


@pytest.fixture()
def queue(db: Database) -> SQLiteSyncQueueStore:
    return SQLiteSyncQueueStore(db)


@pytest.fixture()
def dead_letters(db: Database) -> SQLiteDeadLetterStore:
    return SQLiteDeadLetterStore(db)


@pytest.fixture()
def tasks(db: Database, queue: SQLiteSyncQueueStore) -> SQLiteTaskStore:
    return SQLiteTaskStore(db, queue)


@pytest.fixture()
def bundle(tmp_path: Path) -> ConfigurationBundle:
    """Repository defaults only; the process environment is ignored."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return load_runtime_configuration(data_dir, env={})


@pytest.fixture()
def client() -> FakeRemoteClient:
    return FakeRemoteClient()


@pytest.fixture()
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture()
def runtime(bundle: ConfigurationBundle, client: FakeRemoteClient, probe: FakeProbe) -> SyncRuntime:
    """SQLite-backed runtime (in memory) with a scripted remote peer."""
    rt = build_runtime(bundle, database=Database(":memory:"), client=client, probe=probe)
    yield rt
    rt.close()
