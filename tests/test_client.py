"""Tests for the remote sync client's request building and error classification."""

from __future__ import annotations

import io
import json
import socket
from typing import Any, Dict, List
from urllib.error import HTTPError, URLError

import pytest

from tasksync.sync import (
    ChecksumMismatchError,
    Operation,
    RemoteSettings,
    RemoteSyncClient,
    SyncQueueEntry,
    TransientRemoteError,
    ValidationRemoteError,
)
from tasksync.sync import client as client_module


class _Response:
    def __init__(self, body: Any, status: int = 200) -> None:
        self.status = status
        self._raw = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")

    def read(self) -> bytes:
        return self._raw

    def __enter__(self) -> "_Response":
        return self

    def __exit__(self, *exc) -> None:
        return None


def _http_error(code: int, body: Dict[str, Any]) -> HTTPError:
    return HTTPError("http://remote/api/batch", code, "error", {}, io.BytesIO(json.dumps(body).encode("utf-8")))


def _install(monkeypatch, responder) -> List[Any]:
    requests: List[Any] = []

    def fake_urlopen(req, timeout=None):
        requests.append((req, timeout))
        return responder(req)

    monkeypatch.setattr(client_module, "urlopen", fake_urlopen)
    return requests


def _entry(task_id: str = "t1", operation: Operation = Operation.CREATE) -> SyncQueueEntry:
    return SyncQueueEntry(id=f"e-{task_id}", task_id=task_id, operation=operation, payload='{"id":"%s"}' % task_id)


@pytest.fixture()
def remote() -> RemoteSyncClient:
    return RemoteSyncClient(RemoteSettings(base_url="http://remote/api/", timeout=7, api_key="secret"))


def test_send_batch_posts_checksum_and_items(monkeypatch, remote: RemoteSyncClient):
    requests = _install(monkeypatch, lambda req: _Response({
        "success": True,
        "results": [{"task_id": "t1", "operation": "create", "success": True, "data": {"id": "srv-1"}}],
    }))

    result = remote.send_batch([_entry()], "abc123")

    req, timeout = requests[0]
    body = json.loads(req.data.decode("utf-8"))
    assert req.full_url == "http://remote/api/batch"
    assert req.get_method() == "POST"
    assert req.get_header("X-api-key") == "secret"
    assert timeout == 7
    assert body["checksum"] == "abc123"
    assert body["items"][0]["data"] == {"id": "t1"}
    assert result.results[0].server_id == "srv-1"


def test_misaligned_batch_response_is_transient(monkeypatch, remote: RemoteSyncClient):
    _install(monkeypatch, lambda req: _Response({"success": True, "results": []}))

    with pytest.raises(TransientRemoteError):
        remote.send_batch([_entry()], "abc")


def test_malformed_body_is_transient(monkeypatch, remote: RemoteSyncClient):
    _install(monkeypatch, lambda req: _Response(b"<html>oops</html>"))

    with pytest.raises(TransientRemoteError):
        remote.send_batch([_entry()], "abc")


@pytest.mark.parametrize(
    "body",
    [
        {"success": True, "results": ["ok"]},
        {"success": True, "results": [None]},
        {"success": True, "results": {"t1": "ok"}},
    ],
)
def test_results_of_the_wrong_shape_are_transient(monkeypatch, remote: RemoteSyncClient, body):
    _install(monkeypatch, lambda req: _Response(body))

    with pytest.raises(TransientRemoteError) as excinfo:
        remote.send_batch([_entry()], "abc")
    assert "Malformed batch response" in str(excinfo.value)


@pytest.mark.parametrize("code", [500, 503, 408, 429])
def test_retryable_status_codes_are_transient(monkeypatch, remote: RemoteSyncClient, code: int):
    def responder(req):
        raise _http_error(code, {"error": "busy"})

    _install(monkeypatch, responder)

    with pytest.raises(TransientRemoteError) as excinfo:
        remote.send_batch([_entry()], "abc")
    assert excinfo.value.status_code == code


def test_client_errors_are_validation_failures(monkeypatch, remote: RemoteSyncClient):
    def responder(req):
        raise _http_error(422, {"error": "title is required"})

    _install(monkeypatch, responder)

    with pytest.raises(ValidationRemoteError) as excinfo:
        remote.send_batch([_entry()], "abc")
    assert "title is required" in str(excinfo.value)


def test_checksum_mismatch_is_recognised(monkeypatch, remote: RemoteSyncClient):
    def responder(req):
        raise _http_error(400, {"error": "checksum_mismatch"})

    _install(monkeypatch, responder)

    with pytest.raises(ChecksumMismatchError):
        remote.send_batch([_entry()], "abc")


def test_connection_errors_and_timeouts_are_transient(monkeypatch, remote: RemoteSyncClient):
    def refused(req):
        raise URLError("connection refused")

    _install(monkeypatch, refused)
    with pytest.raises(TransientRemoteError):
        remote.create_task({"id": "t1"})

    def slow(req):
        raise socket.timeout("timed out")

    _install(monkeypatch, slow)
    with pytest.raises(TransientRemoteError):
        remote.create_task({"id": "t1"})


def test_send_item_dispatches_on_operation(monkeypatch, remote: RemoteSyncClient):
    requests = _install(monkeypatch, lambda req: _Response({"id": "srv-1"}))

    remote.send_item(_entry("t1", Operation.CREATE))
    remote.send_item(_entry("t2", Operation.UPDATE))
    result = remote.send_item(_entry("t3", Operation.DELETE))

    calls = [(req.get_method(), req.full_url) for req, _ in requests]
    assert calls == [
        ("POST", "http://remote/api/tasks"),
        ("PUT", "http://remote/api/tasks/t2"),
        ("DELETE", "http://remote/api/tasks/t3"),
    ]
    assert result.success is True
    assert result.server_id == "srv-1"


def test_check_health_never_raises(monkeypatch, remote: RemoteSyncClient):
    _install(monkeypatch, lambda req: _Response({"status": "ok"}))
    assert remote.check_health(timeout=1) is True

    def down(req):
        raise URLError("no route to host")

    _install(monkeypatch, down)
    assert remote.check_health(timeout=1) is False


def test_check_health_accepts_any_success_status(monkeypatch, remote: RemoteSyncClient):
    _install(monkeypatch, lambda req: _Response(b"", status=204))
    assert remote.check_health(timeout=1) is True

    _install(monkeypatch, lambda req: _Response({"status": "ok"}, status=202))
    assert remote.check_health(timeout=1) is True


def test_settings_come_from_configuration(bundle):
    bundle.merged["remote"]["base_url"] = "https://tasks.example.com/api"
    bundle.merged["remote"]["timeout"] = -1

    settings = RemoteSettings.from_bundle(bundle)

    assert settings.base_url == "https://tasks.example.com/api"
    assert settings.timeout == client_module.DEFAULT_TIMEOUT
