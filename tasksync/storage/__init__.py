"""Local persistence for tasks and sync bookkeeping."""

from __future__ import annotations

from .database import Database
from .tasks import SQLiteTaskStore, TaskStore

__all__ = ["Database", "SQLiteTaskStore", "TaskStore"]
