"""Last-writer-wins conflict resolution for task records.

The rule is deliberately simple: the version with the strictly newer
``updated_at`` wins. On an exact tie the deleted version wins, so content
someone explicitly removed is not resurrected. If both are still tied the
local version is kept.

Tradeoff: a concurrent non-deleting edit on the losing side is silently
discarded. There is no field-level merge.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .models import Task, parse_timestamp

logger = logging.getLogger("tasksync.sync.conflict")


class ConflictReason(str, Enum):
    """Why a version won."""
    LOCAL_NEWER = "local_newer"
    REMOTE_NEWER = "remote_newer"
    LOCAL_DELETED = "local_deleted"
    REMOTE_DELETED = "remote_deleted"
    TIE_PREFER_LOCAL = "tie_prefer_local"


@dataclass
class ConflictResolution:
    """Result of conflict resolution."""

    winner: Task
    reason: ConflictReason

    @property
    def local_wins(self) -> bool:
        return self.reason in (
            ConflictReason.LOCAL_NEWER,
            ConflictReason.LOCAL_DELETED,
            ConflictReason.TIE_PREFER_LOCAL,
        )


class ConflictResolver:
    """Resolves divergent local and remote versions of one task."""

    def resolve(self, local: Task, remote: Task) -> Task:
        return self.explain(local, remote).winner

    def explain(self, local: Task, remote: Task) -> ConflictResolution:
        local_time = parse_timestamp(local.updated_at)
        remote_time = parse_timestamp(remote.updated_at)

        if local_time > remote_time:
            resolution = ConflictResolution(local, ConflictReason.LOCAL_NEWER)
        elif remote_time > local_time:
            resolution = ConflictResolution(remote, ConflictReason.REMOTE_NEWER)
        elif local.is_deleted and not remote.is_deleted:
            resolution = ConflictResolution(local, ConflictReason.LOCAL_DELETED)
        elif remote.is_deleted and not local.is_deleted:
            resolution = ConflictResolution(remote, ConflictReason.REMOTE_DELETED)
        else:
            resolution = ConflictResolution(local, ConflictReason.TIE_PREFER_LOCAL)

        logger.debug("Conflict on task %s resolved: %s", local.id, resolution.reason.value)
        return resolution


def resolve(local: Task, remote: Task) -> Task:
    """Module-level shortcut for :meth:`ConflictResolver.resolve`."""
    return ConflictResolver().resolve(local, remote)


__all__ = ["ConflictReason", "ConflictResolution", "ConflictResolver", "resolve"]
