"""HTTP server exposing the sync runtime, built on Starlette and uvicorn."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route

from .routes import (
    create_task_handler,
    delete_task_handler,
    get_task_handler,
    health_handler,
    list_tasks_handler,
    sync_status_handler,
    sync_trigger_handler,
    update_task_handler,
)

if TYPE_CHECKING:
    from ..runtime import SyncRuntime

logger = logging.getLogger("tasksync.api.server")


class APIServerState(str, Enum):
    """API server lifecycle states."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


def create_app(runtime: "SyncRuntime", cors_origins: Optional[List[str]] = None) -> Starlette:
    """Build the Starlette application for ``runtime``."""
    middleware = []
    if cors_origins:
        middleware.append(
            Middleware(
                CORSMiddleware,
                allow_origins=cors_origins,
                allow_methods=["GET", "POST", "PUT", "DELETE"],
                allow_headers=["*"],
            )
        )

    routes = [
        Route("/health", health_handler, methods=["GET"]),
        Route("/api/sync", sync_trigger_handler, methods=["POST"]),
        Route("/api/sync/status", sync_status_handler, methods=["GET"]),
        Route("/api/tasks", list_tasks_handler, methods=["GET"]),
        Route("/api/tasks", create_task_handler, methods=["POST"]),
        Route("/api/tasks/{task_id}", get_task_handler, methods=["GET"]),
        Route("/api/tasks/{task_id}", update_task_handler, methods=["PUT"]),
        Route("/api/tasks/{task_id}", delete_task_handler, methods=["DELETE"]),
    ]

    app = Starlette(routes=routes, middleware=middleware)
    app.state.sync_runtime = runtime
    return app


@dataclass
class SyncAPIServer:
    """Runs the sync HTTP surface with uvicorn, optionally in a background thread."""

    runtime: "SyncRuntime"

    _state: APIServerState = field(default=APIServerState.STOPPED, init=False)
    _server: Optional[uvicorn.Server] = field(default=None, init=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False)

    @property
    def state(self) -> APIServerState:
        return self._state

    @property
    def host(self) -> str:
        return str(self._api_config().get("host", "127.0.0.1"))

    @property
    def port(self) -> int:
        return int(self._api_config().get("port", 8000))

    def _api_config(self) -> Dict[str, Any]:
        return self.runtime.config.section("api")

    def create_app(self) -> Starlette:
        return create_app(self.runtime, self._api_config().get("cors_origins") or [])

    def start(self, blocking: bool = False) -> bool:
        """Start the API server.

        Args:
            blocking: If True, block until server stops. If False, run in background thread.

        Returns:
            True if server started successfully.
        """
        if self._state == APIServerState.RUNNING:
            logger.warning("API server is already running")
            return False

        self._state = APIServerState.STARTING
        config = uvicorn.Config(
            self.create_app(),
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        logger.info("API server starting on %s:%s", self.host, self.port)

        if blocking:
            self._state = APIServerState.RUNNING
            try:
                asyncio.run(self._server.serve())
            except Exception as e:
                logger.exception("API server error: %s", e)
                self._state = APIServerState.ERROR
                return False
            self._state = APIServerState.STOPPED
            return True

        self._thread = threading.Thread(
            target=self._run_in_thread,
            daemon=True,
            name="tasksync-api-server",
        )
        self._thread.start()

        for _ in range(20):
            time.sleep(0.1)
            if self._server.started:
                self._state = APIServerState.RUNNING
                break
            if self._state == APIServerState.ERROR:
                break

        return self._state == APIServerState.RUNNING

    def _run_in_thread(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._server.serve())
        except Exception as e:
            logger.exception("API server thread error: %s", e)
            self._state = APIServerState.ERROR
        finally:
            loop.close()
            if self._state != APIServerState.ERROR:
                self._state = APIServerState.STOPPED

    def stop(self) -> bool:
        """Stop the API server.

        Returns:
            True if server stopped successfully.
        """
        if self._state != APIServerState.RUNNING:
            logger.warning("API server is not running")
            return False

        self._state = APIServerState.STOPPING
        if self._server:
            self._server.should_exit = True
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

        self._state = APIServerState.STOPPED
        self._server = None
        self._thread = None
        logger.info("API server stopped")
        return True

    def status(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "host": self.host,
            "port": self.port,
            "url": f"http://{self.host}:{self.port}" if self._state == APIServerState.RUNNING else None,
        }


__all__ = ["SyncAPIServer", "APIServerState", "create_app"]
