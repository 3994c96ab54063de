"""Exception taxonomy for the sync engine."""

from __future__ import annotations

from typing import Optional


class SyncEngineError(Exception):
    """Base class for sync engine errors."""


class ConnectivityError(SyncEngineError):
    """The remote peer is unreachable. Aborts the cycle without consuming attempts."""


class RemoteError(SyncEngineError):
    """A definitive response (or lack of one) from the remote peer."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientRemoteError(RemoteError):
    """Timeout, 5xx, connection reset. Retryable."""


class ValidationRemoteError(RemoteError):
    """4xx or rejected payload. Retrying will not change the outcome."""


class ChecksumMismatchError(RemoteError):
    """The remote peer rejected a batch whose checksum did not match its items."""


class StaleReferenceError(SyncEngineError):
    """A queue entry references a task that no longer exists locally."""

    def __init__(self, task_id: str, entry_id: str) -> None:
        super().__init__(f"Queue entry {entry_id} references missing task {task_id}")
        self.task_id = task_id
        self.entry_id = entry_id


class SyncInProgressError(SyncEngineError):
    """Another sync cycle holds the run-lock."""


__all__ = [
    "ChecksumMismatchError",
    "ConnectivityError",
    "RemoteError",
    "StaleReferenceError",
    "SyncEngineError",
    "SyncInProgressError",
    "TransientRemoteError",
    "ValidationRemoteError",
]
