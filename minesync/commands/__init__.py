"""Commands understood by the ``minesync`` CLI."""

from __future__ import annotations

from .help import COMMAND as HELP_COMMAND
from .paths import COMMAND as PATHS_COMMAND
from .sync import COMMAND as SYNC_COMMAND

COMMANDS = [
    SYNC_COMMAND,
    PATHS_COMMAND,
    HELP_COMMAND,
]

__all__ = ["COMMANDS"]
