"""Slash command for managing the sync HTTP server."""

from __future__ import annotations

from typing import List

from rich.console import Console
from rich.table import Table

from ..api import APIServerState, SyncAPIServer
from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_rich,
)


def _get_server(context: SlashCommandContext) -> SyncAPIServer:
    """Get or create the API server instance for this session."""
    server = context.metadata.get("api_server")
    if server is None:
        server = SyncAPIServer(runtime=context.runtime)
        context.metadata["api_server"] = server
    return server


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    """Manage the sync HTTP server."""

    if not args:
        return _show_status(context)

    subcommand = args[0].lower()

    if subcommand == "start":
        return _start_server(context)
    elif subcommand == "stop":
        return _stop_server(context)
    elif subcommand == "status":
        return _show_status(context)
    elif subcommand == "help":
        return _show_help()
    else:
        return f"[api] Unknown subcommand '{subcommand}'. Use /api help for usage."


def _start_server(context: SlashCommandContext) -> str:
    server = _get_server(context)

    if server.state is APIServerState.RUNNING:
        return f"[api] Server is already running at http://{server.host}:{server.port}"

    if server.start(blocking=False):
        return (
            f"[api] Server started at http://{server.host}:{server.port}\n"
            "Use /api status to check server state"
        )
    return f"[api] Failed to start server (state: {server.state.value})"


def _stop_server(context: SlashCommandContext) -> str:
    server = context.metadata.get("api_server")
    if server is None or server.state is not APIServerState.RUNNING:
        return "[api] Server is not running"

    if server.stop():
        return "[api] Server stopped"
    return f"[api] Failed to stop server (state: {server.state.value})"


def _show_status(context: SlashCommandContext) -> str:
    server = context.metadata.get("api_server")
    api_config = context.config.section("api")

    def _render(console: Console) -> None:
        table = Table(title="API Server Status", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")

        if server is None:
            table.add_row("State", "not started")
            table.add_row("URL", "-")
        else:
            status = server.status()
            table.add_row("State", status["state"])
            table.add_row("URL", status["url"] or "-")

        table.add_row("", "")
        table.add_row("Config: host", str(api_config.get("host", "127.0.0.1")))
        table.add_row("Config: port", str(api_config.get("port", 8000)))

        console.print(table)

    return render_rich(_render)


def _show_help() -> str:
    return """[api] Usage:
  /api              Show server status
  /api start        Start the API server
  /api stop         Stop the API server
  /api status       Show server status
  /api help         Show this help

API Endpoints (when running):
  GET  /health            Liveness check
  POST /api/sync          Run one sync cycle (409 while one is running)
  GET  /api/sync/status   Queue depth, dead letters, last sync, reachability"""


COMMAND = SlashCommand(
    name="api",
    description="Start, stop and inspect the sync HTTP server.",
    handler=_handler,
    usage="/api [start|stop|status]",
    requires_runtime=True,
)
