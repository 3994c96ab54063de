"""Sync cycle driver: connectivity gate, batched drain, retry and dead-letter policy."""

from __future__ import annotations

import contextlib
import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ContextManager, Dict, List, Optional, Set

from ..configuration import ConfigurationBundle
from .client import RemoteSyncClient
from .conflict import ConflictResolver
from .connectivity import ConnectivityProbe
from .dead_letter import DeadLetterStore
from .errors import (
    ChecksumMismatchError,
    ConnectivityError,
    RemoteError,
    StaleReferenceError,
    SyncInProgressError,
    ValidationRemoteError,
)
from .models import (
    CycleState,
    DeadLetterEntry,
    Operation,
    SyncError,
    SyncQueueEntry,
    SyncResult,
    SyncStatus,
    Task,
)
from .policy import DEFAULT_MAX_ATTEMPTS, FailureTransition, RetryPolicy
from .protocol import ItemResult, compute_checksum, plan_batches
from .queue import SyncQueueStore

if TYPE_CHECKING:
    from ..storage.tasks import TaskStore

logger = logging.getLogger("tasksync.sync.orchestrator")

DEFAULT_BATCH_SIZE = 50
OFFLINE_MESSAGE = "No connectivity: remote peer unreachable"


@dataclass
class SyncSettings:
    """Settings for sync cycles."""

    enabled: bool = True
    batch_size: int = DEFAULT_BATCH_SIZE
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    dispatch_mode: str = "batch"  # batch, single
    collapse_superseded: bool = False
    auto_interval: float = 0.0

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "SyncSettings":
        raw = bundle.section("sync")
        return cls(
            enabled=bool(raw.get("enabled", True)),
            batch_size=max(1, int(raw.get("batch_size", DEFAULT_BATCH_SIZE))),
            max_attempts=max(1, int(raw.get("max_attempts", DEFAULT_MAX_ATTEMPTS))),
            dispatch_mode=str(raw.get("dispatch_mode", "batch")),
            collapse_superseded=bool(raw.get("collapse_superseded", False)),
            auto_interval=max(0.0, float(raw.get("auto_interval", 0) or 0)),
        )


@dataclass
class _CycleTally:
    synced: int = 0
    failed: int = 0
    dropped: int = 0
    deferred: int = 0
    aborted_batches: int = 0
    errors: List[SyncError] = field(default_factory=list)
    # Tasks whose earlier entry is still unresolved this cycle; later entries wait.
    blocked: Set[str] = field(default_factory=set)


class SyncOrchestrator:
    """Runs sync cycles against the remote peer.

    ``IDLE -> CHECKING_CONNECTIVITY -> {ABORTED | DRAINING} -> COMPLETED``
    (``CANCELLED`` when :meth:`cancel` is called mid-cycle).

    Only definitive remote responses mutate queue state. Being offline, a
    checksum rejection, cancellation and non-remote exceptions leave every
    attempt counter as it was.
    """

    def __init__(
        self,
        queue: SyncQueueStore,
        dead_letters: DeadLetterStore,
        tasks: TaskStore,
        client: RemoteSyncClient,
        probe: ConnectivityProbe,
        settings: Optional[SyncSettings] = None,
        transaction: Optional[Callable[[], ContextManager[Any]]] = None,
        resolver: Optional[ConflictResolver] = None,
    ):
        self.queue = queue
        self.dead_letters = dead_letters
        self.tasks = tasks
        self.client = client
        self.probe = probe
        self.settings = settings or SyncSettings()
        self.policy = RetryPolicy(self.settings.max_attempts)
        self.resolver = resolver or ConflictResolver()
        self._transaction = transaction or contextlib.nullcontext
        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self.state = CycleState.IDLE
        self.last_result: Optional[SyncResult] = None

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def sync(self, wait: bool = False) -> SyncResult:
        """Run one sync cycle.

        Args:
            wait: Block behind a running cycle instead of rejecting the call.

        Raises:
            SyncInProgressError: another cycle is running and ``wait`` is False.
        """
        if not self._run_lock.acquire(blocking=wait):
            raise SyncInProgressError("A sync cycle is already running")
        try:
            self._stop.clear()
            result = self._run_cycle()
            self.last_result = result
            return result
        finally:
            self.state = CycleState.IDLE
            self._run_lock.release()

    def cancel(self) -> None:
        """Stop after the batch currently in flight; undispatched entries are untouched."""
        self._stop.set()

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "running": self.running,
            "pending_sync": self.queue.count(),
            "pending_tasks": len(self.tasks.get_pending_sync_tasks()),
            "dead_letters": self.dead_letters.count(),
            "last_sync": self.tasks.last_synced_at(),
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }

    # ---- cycle ----

    def _run_cycle(self) -> SyncResult:
        self.state = CycleState.CHECKING_CONNECTIVITY
        try:
            self._require_connectivity()
        except ConnectivityError as exc:
            self.state = CycleState.ABORTED
            logger.warning("Sync aborted: %s", exc)
            return SyncResult(
                success=False,
                errors=[SyncError(task_id="", operation=None, error=str(exc))],
                state=CycleState.ABORTED,
            )

        self.state = CycleState.DRAINING
        tally = _CycleTally()

        entries = self.queue.dequeue_eligible(None, self.settings.max_attempts)
        entries = self._drop_stale_references(entries, tally)
        if self.settings.collapse_superseded:
            entries = self._collapse_superseded(entries, tally)

        batches = plan_batches(entries, self.settings.batch_size)
        logger.info("Sync cycle: %d eligible entries in %d batches", len(entries), len(batches))

        final_state = CycleState.COMPLETED
        for index, batch in enumerate(batches):
            if self._stop.is_set():
                remaining = sum(len(b) for b in batches[index:])
                tally.deferred += remaining
                tally.errors.append(
                    SyncError(task_id="", operation=None, error=f"Sync cancelled; {remaining} entries not dispatched")
                )
                final_state = CycleState.CANCELLED
                logger.warning("Sync cancelled with %d entries left undispatched", remaining)
                break

            ready = [entry for entry in batch if entry.task_id not in tally.blocked]
            tally.deferred += len(batch) - len(ready)
            if not ready:
                continue

            if self.settings.dispatch_mode == "single":
                self._dispatch_single(ready, tally)
            else:
                self._dispatch_batch(ready, tally)

        self.state = final_state
        result = SyncResult(
            success=(
                tally.failed == 0
                and tally.aborted_batches == 0
                and final_state is CycleState.COMPLETED
            ),
            synced_items=tally.synced,
            failed_items=tally.failed,
            errors=tally.errors,
            dropped_items=tally.dropped,
            deferred_items=tally.deferred,
            state=final_state,
        )
        logger.info(
            "Sync cycle finished: %d synced, %d failed, %d dropped, %d deferred",
            result.synced_items,
            result.failed_items,
            result.dropped_items,
            result.deferred_items,
        )
        return result

    def _drop_stale_references(
        self, entries: List[SyncQueueEntry], tally: _CycleTally
    ) -> List[SyncQueueEntry]:
        kept: List[SyncQueueEntry] = []
        for entry in entries:
            if self.tasks.get(entry.task_id, include_deleted=True) is None:
                logger.warning("%s; dropping entry", StaleReferenceError(entry.task_id, entry.id))
                self.queue.delete(entry.id)
                tally.dropped += 1
                continue
            kept.append(entry)
        return kept

    def _collapse_superseded(
        self, entries: List[SyncQueueEntry], tally: _CycleTally
    ) -> List[SyncQueueEntry]:
        """Drop updates made redundant by a later update or delete of the same task."""
        superseding: Set[str] = set()
        kept: List[SyncQueueEntry] = []
        for entry in reversed(entries):
            if entry.operation is Operation.UPDATE and entry.task_id in superseding:
                logger.info("Collapsing superseded update %s for task %s", entry.id, entry.task_id)
                self.queue.delete(entry.id)
                tally.dropped += 1
                continue
            if entry.operation in (Operation.UPDATE, Operation.DELETE):
                superseding.add(entry.task_id)
            kept.append(entry)
        kept.reverse()
        return kept

    def _require_connectivity(self) -> None:
        if not self.probe.is_online():
            raise ConnectivityError(OFFLINE_MESSAGE)

    # ---- dispatch ----

    def _dispatch_batch(self, batch: List[SyncQueueEntry], tally: _CycleTally) -> None:
        checksum = compute_checksum(batch)
        try:
            response = self.client.send_batch(batch, checksum)
        except ChecksumMismatchError as exc:
            # Corrupted in transit, not a rejection of the data: no attempt consumed.
            logger.warning("Batch of %d rejected by checksum (%s); retrying next cycle", len(batch), exc)
            tally.aborted_batches += 1
            tally.deferred += len(batch)
            for entry in batch:
                tally.blocked.add(entry.task_id)
                tally.errors.append(
                    SyncError(entry.task_id, entry.operation, "Checksum mismatch; batch retried next cycle")
                )
            return
        except ValidationRemoteError as exc:
            logger.error("Batch of %d rejected as invalid: %s", len(batch), exc)
            for entry in batch:
                self._record_failure(entry, str(exc), True, tally)
            return
        except RemoteError as exc:
            logger.warning("Batch of %d failed in transport: %s", len(batch), exc)
            for entry in batch:
                self._record_failure(entry, str(exc), False, tally)
            return

        for entry, item in zip(batch, response.results):
            self._apply_item_result(entry, item, tally)

    def _dispatch_single(self, batch: List[SyncQueueEntry], tally: _CycleTally) -> None:
        for entry in batch:
            try:
                item = self.client.send_item(entry)
            except ValidationRemoteError as exc:
                self._record_failure(entry, str(exc), True, tally)
                continue
            except RemoteError as exc:
                self._record_failure(entry, str(exc), False, tally)
                continue
            self._apply_item_result(entry, item, tally)

    def _apply_item_result(self, entry: SyncQueueEntry, item: ItemResult, tally: _CycleTally) -> None:
        if item.success:
            self._record_success(entry, item.server_id)
            tally.synced += 1
        elif item.conflict and item.data:
            self._reconcile(entry, item, tally)
        else:
            self._record_failure(entry, item.error or "Rejected by remote peer", item.permanent, tally)

    # ---- outcomes ----

    def _record_success(self, entry: SyncQueueEntry, server_id: Optional[str]) -> None:
        with self._transaction():
            self.queue.record_success(entry.id)
            remaining = self.queue.count_for_task(entry.task_id)
            if entry.operation is Operation.DELETE and remaining == 0:
                self.tasks.purge(entry.task_id)
            else:
                self.tasks.mark_synced(entry.task_id, server_id)
                if remaining:
                    self.tasks.set_sync_status(entry.task_id, SyncStatus.PENDING)
        logger.debug(
            "Synced %s for task %s",
            entry.operation.value,
            entry.task_id,
            extra={"extra": {"task_id": entry.task_id, "entry_id": entry.id}},
        )

    def _record_failure(
        self, entry: SyncQueueEntry, message: str, permanent: bool, tally: _CycleTally
    ) -> None:
        transition = self.handle_item_failure(entry, message, permanent)
        tally.failed += 1
        tally.errors.append(SyncError(entry.task_id, entry.operation, message))
        if not transition.escalate:
            tally.blocked.add(entry.task_id)

    def handle_item_failure(
        self, entry: SyncQueueEntry, message: str, permanent: bool = False
    ) -> FailureTransition:
        """Count one failed attempt and escalate to the dead-letter store when due."""
        with self._transaction():
            attempts = self.queue.record_failure(entry.id, message)
            transition = self.policy.next_transition(attempts, permanent)
            if transition.escalate:
                self.dead_letters.add(DeadLetterEntry.from_queue_entry(entry, message, attempts))
                self.queue.delete(entry.id)
            self.tasks.set_sync_status(entry.task_id, transition.task_status)
        logger.info(
            "Entry %s for task %s failed (attempt %d/%d%s): %s",
            entry.id,
            entry.task_id,
            attempts,
            self.policy.max_attempts,
            ", escalated" if transition.escalate else "",
            message,
        )
        return transition

    def _reconcile(self, entry: SyncQueueEntry, item: ItemResult, tally: _CycleTally) -> None:
        local = self.tasks.get(entry.task_id, include_deleted=True)
        if local is None:
            logger.warning("%s; dropping entry", StaleReferenceError(entry.task_id, entry.id))
            self.queue.delete(entry.id)
            tally.dropped += 1
            return

        raw = dict(item.data or {})
        raw["server_id"] = raw.get("server_id") or raw.get("id")
        raw["id"] = entry.task_id
        try:
            remote = Task.from_dict(raw)
            resolution = self.resolver.explain(local, remote)
        except (KeyError, TypeError, ValueError, OverflowError, OSError) as exc:
            self._record_failure(entry, f"Unreadable conflict payload: {exc}", False, tally)
            return

        if resolution.local_wins:
            self._record_failure(
                entry,
                f"Conflict with remote version; local kept ({resolution.reason.value})",
                False,
                tally,
            )
            return

        with self._transaction():
            self.queue.record_success(entry.id)
            if remote.is_deleted and self.queue.count_for_task(entry.task_id) == 0:
                self.tasks.purge(entry.task_id)
            else:
                self.tasks.apply_remote(remote)
        logger.info("Conflict on task %s resolved in favour of remote (%s)", entry.task_id, resolution.reason.value)
        tally.synced += 1


__all__ = ["SyncOrchestrator", "SyncSettings", "DEFAULT_BATCH_SIZE", "OFFLINE_MESSAGE"]
