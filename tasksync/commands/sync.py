"""Slash command for driving and inspecting task synchronization."""

from __future__ import annotations

from typing import List

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..slash_commands import (
    SlashCommand,
    SlashCommandContext,
    render_rich,
)
from ..sync import SyncEngineError, SyncInProgressError, SyncResult

MAX_LISTED = 50


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    """Manage task synchronization."""

    if not args:
        return _show_status(context)

    subcommand = args[0].lower()

    if subcommand == "status":
        return _show_status(context)
    elif subcommand == "run":
        return _run_sync(context)
    elif subcommand == "queue":
        return _show_queue(context)
    elif subcommand in ("deadletter", "dead", "dlq"):
        return _show_dead_letters(context)
    elif subcommand == "retry":
        return _retry(context, args[1:])
    elif subcommand == "help":
        return _show_help()
    else:
        return f"[sync] Unknown subcommand '{subcommand}'. Use /sync help for usage."


def _show_status(context: SlashCommandContext) -> str:
    runtime = context.runtime
    snapshot = runtime.status()
    settings = runtime.orchestrator.settings

    def _render(console: Console) -> None:
        table = Table(title="Task Sync Status", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("Enabled", str(settings.enabled))
        table.add_row("Remote", runtime.client.base_url)
        table.add_row("Dispatch", settings.dispatch_mode)
        table.add_row("Batch size", str(settings.batch_size))
        table.add_row("Max attempts", str(settings.max_attempts))
        table.add_row("State", snapshot["state"])
        table.add_row("Pending entries", str(snapshot["pending_sync"]))
        table.add_row("Unsynced tasks", str(snapshot["pending_tasks"]))
        table.add_row("Dead letters", str(snapshot["dead_letters"]))
        table.add_row("Last sync", snapshot["last_sync"] or "(never)")

        last = snapshot.get("last_result")
        if last:
            table.add_row(
                "Last result",
                f"{'ok' if last['success'] else 'failed'} "
                f"({last['synced_items']} synced, {last['failed_items']} failed)",
            )

        console.print(table)

    return render_rich(_render)


def _run_sync(context: SlashCommandContext) -> str:
    runtime = context.runtime
    if not runtime.orchestrator.settings.enabled:
        return "[sync] Sync is disabled. Set sync.enabled: true in configuration."

    try:
        result = runtime.orchestrator.sync(wait=False)
    except SyncInProgressError:
        return "[sync] A sync cycle is already running."
    except SyncEngineError as e:
        return f"[sync] Sync error: {e}"

    return _format_result(result)


def _format_result(result: SyncResult) -> str:
    headline = "completed" if result.success else f"finished with problems ({result.state.value})"
    lines = [f"[sync] Sync {headline}"]
    lines.append(f"  Synced: {result.synced_items}")
    if result.failed_items:
        lines.append(f"  Failed: {result.failed_items}")
    if result.dropped_items:
        lines.append(f"  Dropped: {result.dropped_items}")
    if result.deferred_items:
        lines.append(f"  Deferred: {result.deferred_items}")
    for error in result.errors[:10]:
        target = error.task_id or "-"
        lines.append(f"  ! {target}: {error.error}")
    if len(result.errors) > 10:
        lines.append(f"  ... and {len(result.errors) - 10} more")
    return "\n".join(lines)


def _show_queue(context: SlashCommandContext) -> str:
    entries = context.runtime.queue.list_entries()
    if not entries:
        return "[sync] Queue is empty."

    def _render(console: Console) -> None:
        table = Table(title=f"Sync Queue ({len(entries)} entries)", show_header=True)
        table.add_column("Entry", style="dim", max_width=12)
        table.add_column("Task", style="cyan", max_width=12)
        table.add_column("Op")
        table.add_column("Attempts", justify="right")
        table.add_column("Queued")
        table.add_column("Last error", overflow="fold")

        for entry in entries[:MAX_LISTED]:
            table.add_row(
                entry.id[:12],
                entry.task_id[:12],
                entry.operation.value,
                str(entry.attempts),
                entry.created_at,
                escape(entry.error_message or ""),
            )
        if len(entries) > MAX_LISTED:
            console.print(f"(showing first {MAX_LISTED} of {len(entries)} entries)")
        console.print(table)

    return render_rich(_render)


def _show_dead_letters(context: SlashCommandContext) -> str:
    entries = context.runtime.dead_letters.list_entries()
    if not entries:
        return "[sync] No dead letters."

    def _render(console: Console) -> None:
        table = Table(title=f"Dead Letters ({len(entries)})", show_header=True)
        table.add_column("Entry", style="dim")
        table.add_column("Task", style="cyan", max_width=12)
        table.add_column("Op")
        table.add_column("Attempts", justify="right")
        table.add_column("Failed at")
        table.add_column("Error", overflow="fold")

        for entry in entries[:MAX_LISTED]:
            table.add_row(
                entry.id,
                entry.task_id[:12],
                entry.operation.value,
                str(entry.attempts),
                entry.failed_at,
                escape(entry.error_message),
            )
        console.print(table)

    return render_rich(_render)


def _retry(context: SlashCommandContext, args: List[str]) -> str:
    if not args:
        return "[sync] Usage: /sync retry <dead-letter-id>|all"

    runtime = context.runtime
    if args[0].lower() == "all":
        targets = [entry.id for entry in runtime.dead_letters.list_entries()]
    else:
        targets = [args[0]]

    requeued = 0
    missing: List[str] = []
    for entry_id in targets:
        if runtime.requeue(entry_id):
            requeued += 1
        else:
            missing.append(entry_id)

    lines = [f"[sync] Requeued {requeued} dead letter(s)."]
    if missing:
        lines.append(f"  Not requeued: {', '.join(missing)}")
    return "\n".join(lines)


def _show_help() -> str:
    return """[sync] Usage:
  /sync                   Show sync status
  /sync status            Show sync status
  /sync run               Run one sync cycle now
  /sync queue             List pending queue entries
  /sync deadletter        List mutations that exhausted their retries
  /sync retry <id>|all    Move dead letters back into the queue
  /sync help              Show this help

Configuration:
  remote:
    base_url: http://localhost:3000/api
  sync:
    batch_size: 50
    max_attempts: 3
    dispatch_mode: batch    # batch or single
    auto_interval: 0        # seconds, 0 disables"""


COMMAND = SlashCommand(
    name="sync",
    description="Run and inspect task synchronization.",
    handler=_handler,
    usage="/sync [run|status|queue|deadletter|retry]",
    requires_runtime=True,
)
