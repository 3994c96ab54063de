"""Transport adapter for the remote task server."""

from __future__ import annotations

import http.client
import json
import logging
import socket
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from ..configuration import ConfigurationBundle
from .errors import (
    ChecksumMismatchError,
    RemoteError,
    TransientRemoteError,
    ValidationRemoteError,
)
from .models import Operation, SyncQueueEntry
from .protocol import CHECKSUM_MISMATCH_CODE, BatchRequest, BatchResult, ItemResult

logger = logging.getLogger("tasksync.sync.client")

DEFAULT_TIMEOUT = 30.0
RETRYABLE_STATUS = {408, 425, 429}


@dataclass
class RemoteSettings:
    """Settings for talking to the remote peer."""

    base_url: str = "http://localhost:3000/api"
    timeout: float = DEFAULT_TIMEOUT
    api_key: str = ""

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "RemoteSettings":
        raw = bundle.section("remote")
        try:
            timeout = float(raw.get("timeout", DEFAULT_TIMEOUT))
            if timeout <= 0:
                timeout = DEFAULT_TIMEOUT
        except (TypeError, ValueError):
            timeout = DEFAULT_TIMEOUT
        return cls(
            base_url=str(raw.get("base_url") or cls.base_url),
            timeout=timeout,
            api_key=str(raw.get("api_key") or ""),
        )


class RemoteSyncClient:
    """Issues batched and single-item requests to the remote peer.

    Every failure is raised as a :class:`RemoteError` subclass so callers can
    apply retry policy without looking at HTTP details:

    * :class:`TransientRemoteError` for timeouts, connection errors, 5xx,
      408/425/429 and malformed or misaligned response bodies.
    * :class:`ValidationRemoteError` for any other 4xx.
    * :class:`ChecksumMismatchError` when the peer reports a checksum mismatch.
    """

    def __init__(self, settings: RemoteSettings):
        self.settings = settings

    @property
    def base_url(self) -> str:
        return self.settings.base_url.rstrip("/")

    def send_batch(self, items: Sequence[SyncQueueEntry], checksum: str) -> BatchResult:
        """Send a batch with its checksum; results are aligned to ``items``."""
        request = BatchRequest(checksum=checksum, items=list(items))
        _, body = self._request("POST", "/batch", request.to_dict())
        if not isinstance(body, dict):
            raise TransientRemoteError("Malformed batch response: expected a JSON object")

        try:
            result = BatchResult.from_dict(body)
        except (TypeError, ValueError) as exc:
            raise TransientRemoteError(f"Malformed batch response: {exc}") from exc

        if not result.is_aligned_with(items):
            raise TransientRemoteError(
                f"Batch response misaligned: sent {len(items)} items, got {len(result.results)} results"
            )
        logger.debug(
            "Batch of %d sent: %d synced, %d failed",
            len(items),
            result.synced_items,
            result.failed_items,
        )
        return result

    def send_item(self, entry: SyncQueueEntry) -> ItemResult:
        """Legacy single-item dispatch, one request per queue entry."""
        operation = entry.operation
        if operation is Operation.CREATE:
            body = self.create_task(entry.data)
        elif operation is Operation.UPDATE:
            body = self.update_task(entry.task_id, entry.data)
        elif operation is Operation.DELETE:
            body = self.delete_task(entry.task_id)
        else:
            raise ValueError(f"Unsupported operation: {operation!r}")
        return ItemResult(
            task_id=entry.task_id,
            operation=operation,
            success=True,
            data=body if isinstance(body, dict) else None,
        )

    def create_task(self, data: Dict[str, Any]) -> Any:
        _, body = self._request("POST", "/tasks", data)
        return body

    def update_task(self, task_id: str, data: Dict[str, Any]) -> Any:
        _, body = self._request("PUT", f"/tasks/{quote(task_id, safe='')}", data)
        return body

    def delete_task(self, task_id: str) -> Any:
        _, body = self._request("DELETE", f"/tasks/{quote(task_id, safe='')}")
        return body

    def check_health(self, timeout: Optional[float] = None) -> bool:
        """Return True when ``GET /health`` answers with any 2xx status. Never raises."""
        try:
            status, _ = self._request("GET", "/health", timeout=timeout)
        except (RemoteError, ValueError) as exc:
            logger.info("Health check failed: %s", exc)
            return False
        return 200 <= status < 300

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Tuple[int, Any]:
        url = f"{self.base_url}{path}"
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        headers = {"Accept": "application/json"}
        if data is not None:
            headers["Content-Type"] = "application/json"
        if self.settings.api_key:
            headers["X-API-Key"] = self.settings.api_key

        req = Request(url, data=data, headers=headers, method=method)
        effective_timeout = timeout if timeout is not None else self.settings.timeout

        try:
            with urlopen(req, timeout=effective_timeout) as resp:
                status = getattr(resp, "status", 200)
                raw = resp.read()
        except HTTPError as exc:
            raise _classify_http_error(exc, method, path) from exc
        except URLError as exc:
            raise TransientRemoteError(f"Connection error on {method} {path}: {exc.reason}") from exc
        except (socket.timeout, TimeoutError) as exc:
            raise TransientRemoteError(f"Timed out after {effective_timeout}s on {method} {path}") from exc
        except (ConnectionError, http.client.HTTPException) as exc:
            raise TransientRemoteError(f"Connection dropped on {method} {path}: {exc}") from exc

        if not raw:
            return status, None
        try:
            return status, json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise TransientRemoteError(f"Malformed response body on {method} {path}") from exc


def _classify_http_error(exc: HTTPError, method: str, path: str) -> RemoteError:
    body = _read_error_body(exc)
    code = exc.code
    detail = ""
    if isinstance(body, dict):
        detail = str(body.get("error") or body.get("message") or "")
        if CHECKSUM_MISMATCH_CODE in (body.get("error"), body.get("code")):
            return ChecksumMismatchError(f"Checksum rejected on {method} {path}", status_code=code)

    message = f"HTTP {code} on {method} {path}" + (f": {detail}" if detail else "")
    if code >= 500 or code in RETRYABLE_STATUS:
        return TransientRemoteError(message, status_code=code)
    return ValidationRemoteError(message, status_code=code)


def _read_error_body(exc: HTTPError) -> Any:
    try:
        raw = exc.read()
    except (OSError, http.client.HTTPException):
        return None
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None


__all__ = ["RemoteSettings", "RemoteSyncClient"]
