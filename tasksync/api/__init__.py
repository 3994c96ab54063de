"""HTTP surface for triggering and inspecting sync."""

from __future__ import annotations

from .server import APIServerState, SyncAPIServer, create_app

__all__ = ["APIServerState", "SyncAPIServer", "create_app"]
