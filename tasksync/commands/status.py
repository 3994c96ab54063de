"""Slash command for runtime status."""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, Tuple

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..slash_commands import SlashCommand, SlashCommandContext, render_rich

SECTION_ALIASES: Dict[str, Sequence[str]] = {
    "info": ("info", "summary"),
    "diagnostics": ("diagnostics", "diag", "diags"),
    "sync": ("sync", "queue"),
}
DEFAULT_MAX_ROWS = 5


def _resolve_sections(args: Iterable[str]) -> Tuple[List[str], bool]:
    """Return sections to render and whether all rows should be shown."""

    normalized = [arg.strip().lower() for arg in args]
    show_all = any(arg in {"--all", "-a", "all"} for arg in normalized)

    requested = [
        section
        for section, aliases in SECTION_ALIASES.items()
        if any(arg in aliases for arg in normalized)
    ]
    return requested or list(SECTION_ALIASES.keys()), show_all


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    config = context.config
    runtime = context.runtime
    sections, show_all = _resolve_sections(args)

    def _render_summary(console: Console) -> None:
        remote = config.section("remote")
        info = Table.grid(padding=(0, 1))
        info.add_column("Key", style="bold", no_wrap=True)
        info.add_column("Value", overflow="fold")
        info.add_row("Data dir", str(config.data_dir))
        info.add_row("Status", config.status)
        info.add_row("Config files", str(len(config.files_loaded)))
        info.add_row("Log path", str(config.log_path or "(not initialized)"))
        info.add_row("Remote", str(remote.get("base_url") or "(not configured)"))
        console.print(Panel(info, title="Runtime Status", border_style="green", padding=(0, 1)))

    def _render_diagnostics(console: Console) -> None:
        if not config.diagnostics:
            console.print(Panel("[green]No diagnostics reported.", title="Diagnostics", border_style="red"))
            return

        diag_table = Table(show_header=True, header_style="bold red", box=box.SIMPLE, pad_edge=False)
        diag_table.add_column("Lvl", style="red", no_wrap=True)
        diag_table.add_column("Message", overflow="fold", ratio=2)
        diag_table.add_column("Source", overflow="fold", ratio=2)

        max_rows = len(config.diagnostics) if show_all else DEFAULT_MAX_ROWS
        for diag in config.diagnostics[:max_rows]:
            diag_table.add_row(diag.level.upper(), diag.message, str(diag.source or config.data_dir))
        console.print(Panel(diag_table, title="Diagnostics", border_style="red", padding=(0, 1)))
        if len(config.diagnostics) > max_rows:
            console.print(
                f"[dim]Showing {max_rows}/{len(config.diagnostics)}. "
                "Use '/status diagnostics --all' for the full list.[/dim]"
            )

    def _render_sync(console: Console) -> None:
        if runtime is None:
            console.print(Panel("[yellow]Sync runtime not started.", title="Sync", border_style="blue"))
            return
        snapshot = runtime.status()
        grid = Table.grid(padding=(0, 1))
        grid.add_column("Key", style="bold", no_wrap=True)
        grid.add_column("Value")
        grid.add_row("State", str(snapshot["state"]))
        grid.add_row("Pending", str(snapshot["pending_sync"]))
        grid.add_row("Unsynced tasks", str(snapshot["pending_tasks"]))
        grid.add_row("Dead letters", str(snapshot["dead_letters"]))
        grid.add_row("Last sync", str(snapshot["last_sync"] or "never"))
        grid.add_row("Auto sync", "on" if snapshot.get("auto_sync") else "off")
        console.print(Panel(grid, title="Sync", border_style="blue", padding=(0, 1)))

    renderers = {
        "info": _render_summary,
        "diagnostics": _render_diagnostics,
        "sync": _render_sync,
    }

    def _render(console: Console) -> None:
        for section in sections:
            renderers[section](console)

    return render_rich(_render)


COMMAND = SlashCommand(
    name="status",
    description="Show configuration diagnostics and sync queue state.",
    handler=_handler,
    usage="/status [info|diagnostics|sync] [--all]",
)
