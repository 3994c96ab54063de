"""Shared slash command registry and helpers."""

from __future__ import annotations

import shlex
import shutil
from dataclasses import dataclass, field
from io import StringIO
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .configuration import ConfigurationBundle

if TYPE_CHECKING:
    from .runtime import SyncRuntime

SlashCommandHandler = Callable[["SlashCommandContext", List[str]], str]


@dataclass
class SlashCommandContext:
    """Context passed into each slash command handler."""

    config: ConfigurationBundle
    router: "CommandRouter"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def runtime(self) -> Optional["SyncRuntime"]:
        return self.metadata.get("runtime")


@dataclass
class SlashCommand:
    """Metadata about a slash command."""

    name: str
    description: str
    handler: SlashCommandHandler
    usage: str = ""
    requires_runtime: bool = False


class CommandRouter:
    """Registry + dispatcher for slash commands."""

    def __init__(
        self,
        config: ConfigurationBundle,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self._commands: Dict[str, SlashCommand] = {}
        self.metadata = metadata or {}

    def register(self, command: SlashCommand) -> None:
        self._commands[command.name.lower()] = command

    def register_all(self, commands: Sequence[SlashCommand]) -> None:
        for command in commands:
            self.register(command)

    def handle(self, command_name: str, args: List[str]) -> str:
        command = self._commands.get(command_name.lower())
        if command is None:
            return f"[router] unknown command '/{command_name}'. Try /help."
        if command.requires_runtime and self.metadata.get("runtime") is None:
            return (
                f"[router] '/{command_name}' needs the sync runtime "
                f"(configuration status: {self.config.status})."
            )
        context = SlashCommandContext(
            config=self.config,
            router=self,
            metadata=self.metadata,
        )
        return command.handler(context, args)

    def dispatch_line(self, line: str) -> Optional[str]:
        """Handle a raw ``/command arg ...`` line. Returns None for non-commands."""
        parsed = parse_command_line(line)
        if parsed is None:
            return None
        name, args = parsed
        return self.handle(name, args)

    @property
    def command_names(self) -> Sequence[str]:
        return sorted(self._commands.keys())

    def commands(self) -> Sequence[SlashCommand]:
        return [self._commands[name] for name in self.command_names]

    def get(self, command_name: str) -> Optional[SlashCommand]:
        return self._commands.get(command_name.lower())


def parse_command_line(line: str) -> Optional[Tuple[str, List[str]]]:
    stripped = line.strip()
    if not stripped.startswith("/"):
        return None
    try:
        parts = shlex.split(stripped[1:])
    except ValueError:
        parts = stripped[1:].split()
    if not parts:
        return None
    return parts[0], parts[1:]


def render_help_table(commands: Sequence[SlashCommand]) -> str:
    """Render a help table listing slash commands."""

    def _render(console: Console) -> None:
        table = Table(title="Slash Commands", show_header=True, header_style="bold cyan")
        table.add_column("Command", style="green", no_wrap=True)
        table.add_column("Usage")
        table.add_column("Description")
        for cmd in commands:
            table.add_row(f"/{cmd.name}", escape(cmd.usage), escape(cmd.description))
        console.print(table)

    return render_rich(_render)


def render_rich(render_fn: Callable[[Console], None]) -> str:
    """Render a Rich layout to an ANSI string without printing live."""

    terminal_size = shutil.get_terminal_size(fallback=(80, 24))
    # Rich misbehaves on very narrow consoles.
    width = max(20, terminal_size.columns)
    height = max(10, terminal_size.lines)

    console = Console(
        record=True,
        force_terminal=True,
        color_system="auto",
        width=width,
        height=height,
        file=StringIO(),
    )
    render_fn(console)
    return console.export_text(clear=False, styles=True)


__all__ = [
    "SlashCommand",
    "SlashCommandContext",
    "CommandRouter",
    "parse_command_line",
    "render_help_table",
    "render_rich",
]
