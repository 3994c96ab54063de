"""Logging helpers for the tasksync runtime."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from typing import Optional, Union

LOG_SUBPATH = Path("logs") / "tasksync.log"
STRUCTURED_LOG_SUBPATH = Path("logs") / "tasksync.jsonl"
MAX_BYTES = 5 * 1024 * 1024  # 5 MB per log segment
BACKUP_COUNT = 3
REPO_ROOT = Path(__file__).resolve().parent.parent
FALLBACK_ROOT = REPO_ROOT / ".tasksync_runtime"


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        # Sync modules attach task/entry identifiers via `extra={"extra": {...}}`
        if hasattr(record, "extra") and record.extra:
            log_entry["extra"] = record.extra
        return json.dumps(log_entry)


def setup_logging(
    data_dir: Path,
    level: Union[str, int] = logging.WARNING,
    structured: bool = True,
    structured_path: Optional[str] = None,
    console: bool = True,
) -> Path:
    """Route the ``tasksync`` logger hierarchy to rotating files under ``data_dir``.

    The text log is always written. ``structured`` adds a JSON-lines log
    (``structured_path`` overrides its location relative to ``data_dir``) and
    ``console`` mirrors records to stderr. Calling this again replaces the
    previous handlers. Returns the text log path, which may sit under
    ``FALLBACK_ROOT`` when the data directory is not writable.
    """
    text_formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    log_path = _writable_path(data_dir, LOG_SUBPATH, "logs")

    logger = logging.getLogger("tasksync")
    _reset_handlers(logger)
    logger.setLevel(_resolve_level(level))
    logger.addHandler(_rotating_handler(log_path, text_formatter))

    if console:
        stream = logging.StreamHandler()
        stream.setFormatter(text_formatter)
        logger.addHandler(stream)

    if structured:
        subpath = Path(structured_path) if structured_path else STRUCTURED_LOG_SUBPATH
        json_path = _writable_path(data_dir, subpath, "structured logs")
        logger.addHandler(_rotating_handler(json_path, JSONFormatter()))

    logger.propagate = False
    _silence_third_party()
    return log_path


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return int(level)


def _rotating_handler(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def _writable_path(data_dir: Path, subpath: Path, what: str) -> Path:
    """Return ``data_dir / subpath`` with its parent created, or the fallback equivalent."""
    target = data_dir / subpath
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        return target
    except PermissionError:
        fallback = FALLBACK_ROOT / subpath
        fallback.parent.mkdir(parents=True, exist_ok=True)
        print(
            f"[config] Unable to write {what} under '{data_dir}'; falling back to '{fallback.parent}'.",
            file=sys.stderr,
        )
        return fallback


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _silence_third_party() -> None:
    # uvicorn logs every request at INFO; keep it quiet unless asked.
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


__all__ = ["setup_logging", "JSONFormatter", "LOG_SUBPATH", "STRUCTURED_LOG_SUBPATH", "FALLBACK_ROOT"]
