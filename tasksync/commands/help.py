"""``/help``: the command table, or usage for one command."""

from __future__ import annotations

from typing import List

from ..slash_commands import SlashCommand, SlashCommandContext, render_help_table


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    router = context.router
    if not args:
        return render_help_table(router.commands())

    name = args[0].lstrip("/").lower()
    command = router.get(name)
    if command is None:
        return f"[help] No command named '/{name}'. Known: {', '.join('/' + n for n in router.command_names)}"

    lines = [f"/{command.name}: {command.description}"]
    if command.usage:
        lines.append(f"  usage: {command.usage}")
    if command.requires_runtime and context.runtime is None:
        lines.append("  (unavailable until the sync runtime starts)")
    return "\n".join(lines)


COMMAND = SlashCommand(
    name="help",
    description="List commands, or show usage for one.",
    handler=_handler,
    usage="/help [command]",
)
