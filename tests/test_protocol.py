"""Tests for batch checksums, wire formats and batch planning."""

from __future__ import annotations

import pytest

from tasksync.sync import (
    BatchRequest,
    BatchResult,
    Operation,
    SyncQueueEntry,
    Task,
    compute_checksum,
    plan_batches,
)
from tasksync.sync.models import canonical_json
from tasksync.sync.protocol import verify_checksum


def _entry(entry_id: str, task_id: str, title: str = "t", operation: Operation = Operation.CREATE) -> SyncQueueEntry:
    return SyncQueueEntry(
        id=entry_id,
        task_id=task_id,
        operation=operation,
        payload=Task(id=task_id, title=title, created_at="2024-01-01T00:00:00.000000+00:00",
                     updated_at="2024-01-01T00:00:00.000000+00:00").snapshot(),
    )


def test_checksum_is_deterministic():
    entries = [_entry("e1", "t1"), _entry("e2", "t2")]

    assert compute_checksum(entries) == compute_checksum(list(entries))
    assert len(compute_checksum(entries)) == 64


def test_checksum_depends_on_order_ids_and_payloads():
    base = [_entry("e1", "t1"), _entry("e2", "t2")]
    reference = compute_checksum(base)

    assert compute_checksum(list(reversed(base))) != reference
    assert compute_checksum([_entry("e9", "t1"), _entry("e2", "t2")]) != reference
    assert compute_checksum([_entry("e1", "t1", title="tampered"), _entry("e2", "t2")]) != reference


def test_verify_checksum_detects_tampering():
    entries = [_entry("e1", "t1")]
    checksum = compute_checksum(entries)

    assert verify_checksum(entries, checksum) is True
    assert verify_checksum([_entry("e1", "t1", title="other")], checksum) is False


def test_canonical_json_is_key_order_independent():
    assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
    assert canonical_json({"a": [1, 2], "b": 1}) == canonical_json({"b": 1, "a": [1, 2]})


def test_batch_request_wire_format():
    entry = _entry("e1", "t1", title="Wire")

    body = BatchRequest.build([entry]).to_dict()

    assert body["checksum"] == compute_checksum([entry])
    assert body["items"] == [
        {"id": "e1", "task_id": "t1", "operation": "create", "data": entry.data},
    ]
    assert body["items"][0]["data"]["title"] == "Wire"


def test_batch_result_parses_item_outcomes():
    result = BatchResult.from_dict({
        "success": False,
        "results": [
            {"task_id": "t1", "operation": "create", "success": True, "data": {"id": "srv-1"}},
            {"task_id": "t2", "operation": "update", "success": False, "error": "bad", "error_type": "validation"},
        ],
    })

    assert result.synced_items == 1
    assert result.failed_items == 1
    assert result.results[0].server_id == "srv-1"
    assert result.results[1].permanent is True
    assert result.results[1].operation is Operation.UPDATE
    assert result.is_aligned_with([_entry("e1", "t1"), _entry("e2", "t2")])
    assert not result.is_aligned_with([_entry("e2", "t2"), _entry("e1", "t1")])
    assert not result.is_aligned_with([_entry("e1", "t1")])


def test_plan_batches_respects_size():
    entries = [_entry(f"e{i}", f"t{i}") for i in range(5)]

    batches = plan_batches(entries, 2)

    assert [[e.id for e in batch] for batch in batches] == [["e0", "e1"], ["e2", "e3"], ["e4"]]


def test_plan_batches_keeps_one_entry_per_task_per_batch():
    entries = [
        _entry("c1", "t1"),
        _entry("u1", "t1", operation=Operation.UPDATE),
        _entry("c2", "t2"),
        _entry("d1", "t1", operation=Operation.DELETE),
    ]

    batches = plan_batches(entries, 50)

    assert [[e.id for e in batch] for batch in batches] == [["c1", "c2"], ["u1"], ["d1"]]


def test_plan_batches_rejects_zero_size():
    with pytest.raises(ValueError):
        plan_batches([], 0)
