"""Slash command for local task edits. Every edit is queued for sync."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..slash_commands import SlashCommand, SlashCommandContext, render_rich
from ..sync import SyncStatus, Task

STATUS_STYLES = {
    SyncStatus.PENDING: "yellow",
    SyncStatus.IN_PROGRESS: "cyan",
    SyncStatus.SYNCED: "green",
    SyncStatus.ERROR: "red",
    SyncStatus.FAILED: "bold red",
}


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    if not args:
        return _list(context, [])

    subcommand = args[0].lower()
    rest = args[1:]

    if subcommand == "list":
        return _list(context, rest)
    elif subcommand == "add":
        return _add(context, rest)
    elif subcommand == "done":
        return _set_completed(context, rest, True)
    elif subcommand == "undo":
        return _set_completed(context, rest, False)
    elif subcommand == "edit":
        return _edit(context, rest)
    elif subcommand in ("rm", "delete"):
        return _remove(context, rest)
    else:
        return f"[task] Unknown subcommand '{subcommand}'. Usage: {COMMAND.usage}"


def _resolve(context: SlashCommandContext, prefix: str) -> Tuple[Optional[Task], str]:
    """Find a live task by id or unique id prefix."""
    store = context.runtime.tasks
    exact = store.get(prefix)
    if exact is not None:
        return exact, ""
    matches = [task for task in store.list_tasks() if task.id.startswith(prefix)]
    if not matches:
        return None, f"[task] No task matches '{prefix}'."
    if len(matches) > 1:
        return None, f"[task] '{prefix}' is ambiguous ({len(matches)} matches)."
    return matches[0], ""


def _list(context: SlashCommandContext, args: List[str]) -> str:
    show_deleted = any(arg in {"--all", "-a", "all"} for arg in args)
    tasks = context.runtime.tasks.list_tasks(include_deleted=show_deleted)
    if not tasks:
        return "[task] No tasks yet. Add one with /task add <title>."

    def _render(console: Console) -> None:
        table = Table(title=f"Tasks ({len(tasks)})", show_header=True)
        table.add_column("Id", style="dim", no_wrap=True)
        table.add_column("", no_wrap=True)
        table.add_column("Title", overflow="fold")
        table.add_column("Sync", no_wrap=True)
        table.add_column("Updated", no_wrap=True)
        for task in tasks:
            mark = "x" if task.completed else " "
            label = escape(task.title)
            title = f"[strike]{label}[/strike]" if task.is_deleted else label
            style = STATUS_STYLES.get(task.sync_status, "")
            table.add_row(
                task.id[:8],
                escape(f"[{mark}]"),
                title,
                f"[{style}]{task.sync_status.value}[/{style}]" if style else task.sync_status.value,
                task.updated_at,
            )
        console.print(table)

    return render_rich(_render)


def _add(context: SlashCommandContext, args: List[str]) -> str:
    if not args:
        return "[task] Usage: /task add <title> [--desc <description>]"
    description = ""
    if "--desc" in args:
        index = args.index("--desc")
        description = " ".join(args[index + 1:])
        args = args[:index]
    title = " ".join(args).strip()
    if not title:
        return "[task] A task needs a title."
    task = context.runtime.tasks.create_local(title, description)
    return f"[task] Added {task.id[:8]}: {task.title}"


def _set_completed(context: SlashCommandContext, args: List[str], completed: bool) -> str:
    if not args:
        return "[task] Usage: /task done <id>"
    task, error = _resolve(context, args[0])
    if task is None:
        return error
    context.runtime.tasks.update_local(task.id, {"completed": completed})
    state = "done" if completed else "open"
    return f"[task] Marked {task.id[:8]} as {state}."


def _edit(context: SlashCommandContext, args: List[str]) -> str:
    if len(args) < 2:
        return "[task] Usage: /task edit <id> title=<text> [description=<text>]"
    task, error = _resolve(context, args[0])
    if task is None:
        return error

    patch: Dict[str, object] = {}
    for item in args[1:]:
        key, sep, value = item.partition("=")
        if not sep:
            return f"[task] Expected field=value, got '{item}'."
        key = key.strip().lower()
        if key in ("title", "description"):
            patch[key] = value
        elif key == "completed":
            patch[key] = value.strip().lower() in {"1", "true", "yes", "y"}
        else:
            return f"[task] Field '{key}' cannot be edited."

    context.runtime.tasks.update_local(task.id, patch)
    return f"[task] Updated {task.id[:8]} ({', '.join(sorted(patch))})."


def _remove(context: SlashCommandContext, args: List[str]) -> str:
    if not args:
        return "[task] Usage: /task rm <id>"
    task, error = _resolve(context, args[0])
    if task is None:
        return error
    context.runtime.tasks.soft_delete_local(task.id)
    return f"[task] Deleted {task.id[:8]}; removal will sync on the next cycle."


COMMAND = SlashCommand(
    name="task",
    description="Create, edit, complete and delete local tasks.",
    handler=_handler,
    usage="/task [list|add|done|undo|edit|rm]",
    requires_runtime=True,
)
