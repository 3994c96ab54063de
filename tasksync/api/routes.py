"""API route handlers for the sync HTTP surface.

Handlers only forward to the sync runtime; blocking work runs in the
threadpool so the event loop stays responsive during a cycle.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..sync import SyncInProgressError

if TYPE_CHECKING:
    from ..runtime import SyncRuntime

logger = logging.getLogger("tasksync.api.routes")


def _runtime(request: Request) -> "SyncRuntime":
    return request.app.state.sync_runtime


async def health_handler(request: Request) -> JSONResponse:
    """Liveness check; never touches the remote peer."""
    return JSONResponse({
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "tasksync",
    })


async def sync_trigger_handler(request: Request) -> JSONResponse:
    """Run one sync cycle and return its result verbatim."""
    runtime = _runtime(request)
    if not runtime.orchestrator.settings.enabled:
        return JSONResponse({"error": "Sync is disabled"}, status_code=503)

    try:
        result = await run_in_threadpool(runtime.orchestrator.sync, False)
    except SyncInProgressError as e:
        return JSONResponse({"error": str(e)}, status_code=409)

    logger.info("Sync triggered over HTTP: success=%s", result.success)
    return JSONResponse(result.to_dict())


async def sync_status_handler(request: Request) -> JSONResponse:
    """Queue depth, dead letters, last successful sync and current reachability."""
    runtime = _runtime(request)
    snapshot = runtime.orchestrator.status()
    online = await run_in_threadpool(runtime.probe.is_online)
    return JSONResponse({
        "pending_sync": snapshot["pending_sync"],
        "pending_tasks": snapshot["pending_tasks"],
        "dead_letters": snapshot["dead_letters"],
        "last_sync": snapshot["last_sync"],
        "online": online,
        "state": snapshot["state"],
    })


# ---- tasks ----

EDITABLE_FIELDS: Dict[str, type] = {"title": str, "description": str, "completed": bool}


async def _json_object(request: Request) -> Tuple[Optional[Dict[str, Any]], Optional[JSONResponse]]:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return None, JSONResponse({"error": "Invalid JSON"}, status_code=400)
    if not isinstance(body, dict):
        return None, JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)
    return body, None


def _not_found(task_id: str) -> JSONResponse:
    return JSONResponse({"error": f"Task '{task_id}' not found"}, status_code=404)


async def list_tasks_handler(request: Request) -> JSONResponse:
    """Every live task, most recently updated first."""
    tasks = await run_in_threadpool(_runtime(request).tasks.list_tasks)
    return JSONResponse([task.to_dict() for task in tasks])


async def get_task_handler(request: Request) -> JSONResponse:
    task_id = request.path_params["task_id"]
    task = await run_in_threadpool(_runtime(request).tasks.get, task_id)
    if task is None:
        return _not_found(task_id)
    return JSONResponse(task.to_dict())


async def create_task_handler(request: Request) -> JSONResponse:
    """Create a task locally; the create is queued for the next sync cycle."""
    body, error = await _json_object(request)
    if error is not None:
        return error

    title = body.get("title")
    if not isinstance(title, str) or not title.strip():
        return JSONResponse({"error": "Title is required and must be a string"}, status_code=400)
    description = body.get("description") or ""
    if not isinstance(description, str):
        return JSONResponse({"error": "Invalid description"}, status_code=400)

    task = await run_in_threadpool(_runtime(request).tasks.create_local, title.strip(), description)
    logger.info("Task %s created over HTTP", task.id)
    return JSONResponse(task.to_dict(), status_code=201)


async def update_task_handler(request: Request) -> JSONResponse:
    task_id = request.path_params["task_id"]
    body, error = await _json_object(request)
    if error is not None:
        return error

    patch: Dict[str, Any] = {}
    for field_name, expected in EDITABLE_FIELDS.items():
        if field_name not in body:
            continue
        value = body[field_name]
        if not isinstance(value, expected):
            return JSONResponse({"error": f"Invalid {field_name}"}, status_code=400)
        patch[field_name] = value
    if "title" in patch and not patch["title"].strip():
        return JSONResponse({"error": "Invalid title"}, status_code=400)
    if not patch:
        return JSONResponse(
            {"error": f"Nothing to update; editable fields are {', '.join(EDITABLE_FIELDS)}"},
            status_code=400,
        )

    task = await run_in_threadpool(_runtime(request).tasks.update_local, task_id, patch)
    if task is None:
        return _not_found(task_id)
    return JSONResponse(task.to_dict())


async def delete_task_handler(request: Request) -> JSONResponse:
    """Soft delete: the tombstone stays until the remote peer confirms the delete."""
    task_id = request.path_params["task_id"]
    deleted = await run_in_threadpool(_runtime(request).tasks.soft_delete_local, task_id)
    if not deleted:
        return _not_found(task_id)
    return JSONResponse({"message": "Task deleted successfully", "id": task_id})


__all__ = [
    "create_task_handler",
    "delete_task_handler",
    "get_task_handler",
    "health_handler",
    "list_tasks_handler",
    "sync_status_handler",
    "sync_trigger_handler",
    "update_task_handler",
]
