"""Tests for the retry transition function."""

from __future__ import annotations

import pytest

from tasksync.sync import RetryPolicy, SyncStatus


def test_transient_failures_walk_pending_error_failed():
    policy = RetryPolicy(max_attempts=3)

    statuses = [policy.next_transition(attempts).task_status for attempts in (1, 2, 3)]

    assert statuses == [SyncStatus.ERROR, SyncStatus.ERROR, SyncStatus.FAILED]
    assert policy.next_transition(3).escalate is True


def test_permanent_failure_escalates_on_first_attempt():
    transition = RetryPolicy(max_attempts=5).next_transition(1, permanent=True)

    assert transition.escalate is True
    assert transition.attempts == 1


def test_eligibility_matches_max_attempts():
    policy = RetryPolicy(max_attempts=2)

    assert policy.is_eligible(0)
    assert policy.is_eligible(1)
    assert not policy.is_eligible(2)


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
