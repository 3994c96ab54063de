"""Retry and escalation policy for failed queue entries."""

from __future__ import annotations

from dataclasses import dataclass

from .models import SyncStatus

DEFAULT_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class FailureTransition:
    """What to do with an entry after one more failed attempt."""

    attempts: int
    task_status: SyncStatus

    @property
    def escalate(self) -> bool:
        return self.task_status is SyncStatus.FAILED


@dataclass(frozen=True)
class RetryPolicy:
    """Single source of truth for attempt counting: ``pending -> error -> failed``."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def next_transition(self, attempts: int, permanent: bool = False) -> FailureTransition:
        """``attempts`` is the counter *after* the failure has been recorded.

        Permanent (validation) failures escalate immediately: retrying an
        unfixable payload would only burn the retry budget.
        """
        if permanent or attempts >= self.max_attempts:
            return FailureTransition(attempts, SyncStatus.FAILED)
        return FailureTransition(attempts, SyncStatus.ERROR)

    def is_eligible(self, attempts: int) -> bool:
        return attempts < self.max_attempts


__all__ = ["DEFAULT_MAX_ATTEMPTS", "FailureTransition", "RetryPolicy"]
