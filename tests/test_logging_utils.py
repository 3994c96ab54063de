"""Tests for logging utilities."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from tasksync import logging_utils


def _reset_logger() -> logging.Logger:
    logger = logging.getLogger("tasksync")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    return logger


def test_setup_logging_creates_rotating_file(tmp_path: Path):
    logger = _reset_logger()
    log_path = logging_utils.setup_logging(tmp_path, level="INFO", structured=False, console=False)

    assert log_path == tmp_path / "logs" / "tasksync.log"
    assert log_path.exists()

    file_handlers = [
        handler for handler in logger.handlers if isinstance(handler, RotatingFileHandler)
    ]
    assert len(file_handlers) == 1
    assert file_handlers[0].baseFilename == str(log_path)
    assert logger.level == logging.INFO


def test_setup_logging_is_idempotent(tmp_path: Path):
    logger = _reset_logger()
    logging_utils.setup_logging(tmp_path, level="INFO")
    handler_count = len(logger.handlers)

    logging_utils.setup_logging(tmp_path, level="INFO")
    assert len(logger.handlers) == handler_count


def test_structured_log_carries_sync_identifiers(tmp_path: Path):
    _reset_logger()
    logging_utils.setup_logging(tmp_path, level="DEBUG", console=False)

    logging.getLogger("tasksync.sync.orchestrator").info(
        "Synced create for task t1",
        extra={"extra": {"task_id": "t1", "entry_id": "e1"}},
    )
    for handler in logging.getLogger("tasksync").handlers:
        handler.flush()

    lines = (tmp_path / "logs" / "tasksync.jsonl").read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["logger"] == "tasksync.sync.orchestrator"
    assert record["message"] == "Synced create for task t1"
    assert record["extra"] == {"task_id": "t1", "entry_id": "e1"}


def test_setup_logging_falls_back_when_permission_denied(tmp_path: Path, monkeypatch):
    _reset_logger()
    data_dir = tmp_path / "data"
    primary_parent = data_dir / "logs"
    original_mkdir = Path.mkdir

    def fake_mkdir(self, *args, **kwargs):
        if str(self).startswith(str(primary_parent)):
            raise PermissionError
        return original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fake_mkdir)
    fallback_root = tmp_path / "fallback"
    monkeypatch.setattr(logging_utils, "FALLBACK_ROOT", fallback_root)

    log_path = logging_utils.setup_logging(data_dir, level="INFO", console=False)
    expected = fallback_root / "logs" / "tasksync.log"

    assert log_path == expected
    assert expected.exists()
