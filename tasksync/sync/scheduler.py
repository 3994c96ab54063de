"""Background timer that triggers sync cycles."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .errors import SyncInProgressError
from .orchestrator import SyncOrchestrator

logger = logging.getLogger("tasksync.sync.scheduler")


class AutoSyncScheduler:
    """Runs ``orchestrator.sync()`` every ``interval`` seconds in a daemon thread.

    A tick that lands while a cycle is already running is skipped rather than
    queued.
    """

    def __init__(self, orchestrator: SyncOrchestrator, interval: float):
        self.orchestrator = orchestrator
        self.interval = float(interval)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the timer thread."""
        if self.running:
            return True
        if self.interval <= 0:
            logger.info("Auto sync disabled (interval=%s)", self.interval)
            return False

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            daemon=True,
            name="tasksync-auto-sync",
        )
        self._thread.start()
        logger.info("Auto sync started every %.1fs", self.interval)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the timer and ask a running cycle to finish its current batch."""
        self._stop.set()
        self.orchestrator.cancel()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Auto sync stopped")

    def run_once(self) -> None:
        self.ticks += 1
        try:
            result = self.orchestrator.sync(wait=False)
        except SyncInProgressError:
            self.skipped += 1
            logger.debug("Auto sync tick skipped: cycle already running")
            return
        except Exception as e:
            logger.error("Auto sync error: %s", e)
            return
        if not result.success:
            logger.info(
                "Auto sync finished with %d failed items (%s)",
                result.failed_items,
                result.state.value,
            )

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()


__all__ = ["AutoSyncScheduler"]
