"""Slash command registry."""

from __future__ import annotations

from .api import COMMAND as API_COMMAND
from .help import COMMAND as HELP_COMMAND
from .status import COMMAND as STATUS_COMMAND
from .sync import COMMAND as SYNC_COMMAND
from .tasks import COMMAND as TASK_COMMAND

COMMANDS = [
    STATUS_COMMAND,
    HELP_COMMAND,
    TASK_COMMAND,
    SYNC_COMMAND,
    API_COMMAND,
]

__all__ = ["COMMANDS"]
