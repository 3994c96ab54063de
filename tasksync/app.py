"""
Interactive slash-command loop for the tasksync runtime.

Tasks are edited locally and synced on demand (``/sync run``), on a timer
(``sync.auto_interval``) or through the HTTP surface (``/api start``).
"""

from __future__ import annotations

import logging
from pathlib import Path
from shutil import get_terminal_size
from typing import Optional

try:
    import readline
except ImportError:  # pragma: no cover
    readline = None

from .commands import COMMANDS
from .configuration import (
    ConfigurationBundle,
    Diagnostic,
    load_runtime_configuration,
    resolve_data_dir,
)
from .logging_utils import setup_logging
from .runtime import SyncRuntime, build_runtime
from .slash_commands import CommandRouter

logger = logging.getLogger("tasksync")


def _log_path_within_data_dir(log_path: Path, data_dir: Path) -> bool:
    try:
        log_path.relative_to(data_dir)
        return True
    except ValueError:
        return False


def print_banner() -> None:
    """Print the runtime header."""

    terminal_width = get_terminal_size(fallback=(80, 24)).columns
    if terminal_width < 60:
        print("tasksync :: offline-first tasks")
        print()
        return

    inner_width = 58

    def _line(content: str = "") -> str:
        return f"|{content.center(inner_width)}|"

    print("+" + "-" * inner_width + "+")
    print(_line("TASKSYNC"))
    print(_line("edit offline, sync when you can"))
    print("+" + "-" * inner_width + "+")
    print()


def build_router(config: ConfigurationBundle, runtime: Optional[SyncRuntime] = None) -> CommandRouter:
    """Create a router with every built-in command registered."""

    router = CommandRouter(config, metadata={"runtime": runtime})
    router.register_all(COMMANDS)
    return router


def emit_configuration_report(config: ConfigurationBundle) -> None:
    """Print diagnostics so operators can correct issues quickly."""

    if not config.diagnostics:
        print(f"[config] Loaded {len(config.files_loaded)} file(s) from repo and data config directories.")
        return

    print("[config] Diagnostics:")
    for diag in config.diagnostics:
        prefix = diag.source or config.data_dir
        print(f"  - ({diag.level.upper()}) {diag.message} [{prefix}]")


def configure_autocomplete(router: CommandRouter) -> None:
    """Enable readline tab completion for slash commands."""

    if readline is None:
        return

    commands = list(router.command_names)

    def completer(text: str, state: int):
        buffer = readline.get_line_buffer()
        if not buffer.startswith("/"):
            return None
        fragment = text[1:] if text.startswith("/") else text
        matches = [f"/{cmd}" for cmd in commands if cmd.startswith(fragment)]
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer(completer)
    readline.parse_and_bind("tab: complete")
    readline.set_completer_delims(" \t")


def bootstrap(data_dir: Optional[Path] = None) -> ConfigurationBundle:
    """Load configuration and initialize logging."""

    resolved = data_dir or resolve_data_dir()
    resolved.mkdir(parents=True, exist_ok=True)
    config_bundle = load_runtime_configuration(resolved)

    log_settings = config_bundle.section("logging")
    log_path = setup_logging(
        config_bundle.data_dir,
        str(log_settings.get("level") or "WARNING").upper(),
        structured=bool(log_settings.get("structured", True)),
        console=False,
    )
    config_bundle.log_path = log_path
    if not _log_path_within_data_dir(log_path, config_bundle.data_dir):
        config_bundle.diagnostics.append(
            Diagnostic(
                level="warning",
                message=f"Data log directory is not writable; logging to fallback path '{log_path}'.",
                source=log_path,
            )
        )
    logger.info("Logging initialized at %s", log_path)
    return config_bundle


def main() -> None:
    """Entry point for `python -m tasksync`."""

    config_bundle = bootstrap()
    print_banner()
    emit_configuration_report(config_bundle)

    runtime = build_runtime(config_bundle)
    router = build_router(config_bundle, runtime)
    configure_autocomplete(router)
    if runtime.scheduler.start():
        print(f"[sync] Auto sync every {runtime.scheduler.interval:g}s")

    try:
        while True:
            try:
                raw_line = input("> ")
            except (EOFError, KeyboardInterrupt):
                print("\n[Exiting tasksync]")
                break

            line = raw_line.strip()
            if not line:
                continue
            if line.lower() in {"quit", "exit", "/quit", "/exit"}:
                print("[Goodbye]")
                break
            if not line.startswith("/"):
                print("[tasksync] Commands start with '/'. Try /help.")
                continue

            logger.info("Executing command: %s", line)
            output = router.dispatch_line(line)
            if output:
                print(output)
    finally:
        api_server = router.metadata.get("api_server")
        if api_server is not None:
            api_server.stop()
        runtime.close()
