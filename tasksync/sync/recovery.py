"""Operator-driven recovery of dead-lettered mutations.

The sync engine never calls into this module: moving an entry out of the
dead-letter store is always an explicit decision.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any, Callable, ContextManager, Optional

from .dead_letter import DeadLetterStore
from .models import SyncStatus
from .queue import SyncQueueStore

if TYPE_CHECKING:
    from ..storage.tasks import TaskStore

logger = logging.getLogger("tasksync.sync.recovery")


def requeue_dead_letter(
    entry_id: str,
    dead_letters: DeadLetterStore,
    queue: SyncQueueStore,
    tasks: TaskStore,
    transaction: Optional[Callable[[], ContextManager[Any]]] = None,
) -> Optional[str]:
    """Move a dead letter back into the sync queue with a fresh retry budget.

    Returns the new queue entry id, or None when the dead letter does not
    exist or its task is gone.
    """
    atomic = transaction or contextlib.nullcontext
    with atomic():
        entry = dead_letters.get(entry_id)
        if entry is None:
            return None
        if tasks.get(entry.task_id, include_deleted=True) is None:
            logger.warning("Not requeueing %s: task %s no longer exists", entry_id, entry.task_id)
            return None
        new_id = queue.enqueue(entry.task_id, entry.operation, entry.payload)
        dead_letters.remove(entry_id)
        tasks.set_sync_status(entry.task_id, SyncStatus.PENDING)
    logger.info("Requeued dead letter %s for task %s as %s", entry_id, entry.task_id, new_id)
    return new_id


__all__ = ["requeue_dead_letter"]
