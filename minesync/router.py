"""Command registry for the ``minesync`` CLI and Rich rendering helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from io import StringIO
import shutil
from typing import Any, Callable, Dict, List, Optional, Sequence

from rich.console import Console
from rich.table import Table

from .configuration import ConfigurationBundle

CommandHandler = Callable[["CommandContext", List[str]], str]


@dataclass
class CommandContext:
    """What a handler sees: the loaded configuration and shared run state.

    ``metadata`` outlives a single command; ``sync`` stores its last
    ``SyncResult`` there and tests inject a transport through it.
    """

    config: ConfigurationBundle
    router: "CommandRouter"
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Command:
    name: str
    description: str
    handler: CommandHandler


class CommandRouter:
    """Dispatches ``minesync <command> [args...]`` to registered handlers."""

    def __init__(
        self,
        config: ConfigurationBundle,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.config = config
        self.metadata = metadata or {}
        self._commands: Dict[str, Command] = {}

    def register(self, command: Command) -> None:
        self._commands[command.name.lower()] = command

    def handle(self, name: str, args: List[str]) -> str:
        command = self._commands.get(name.lower())
        if command is None:
            known = ", ".join(self.command_names)
            return f"[minesync] Unknown command '{name}'. Known commands: {known}."
        context = CommandContext(config=self.config, router=self, metadata=self.metadata)
        return command.handler(context, args)

    @property
    def command_names(self) -> List[str]:
        return sorted(self._commands)

    def commands(self) -> List[Command]:
        return [self._commands[name] for name in self.command_names]


def render_help_table(commands: Sequence[Command]) -> str:
    def _render(console: Console) -> None:
        table = Table(title="minesync commands", show_header=True, header_style="bold cyan")
        table.add_column("Command", style="green", no_wrap=True)
        table.add_column("Description")
        for command in commands:
            table.add_row(command.name, command.description)
        console.print(table)

    return render_rich(_render)


def render_rich(render_fn: Callable[[Console], None]) -> str:
    """Render through a recording console and return the ANSI text."""
    columns = max(40, shutil.get_terminal_size(fallback=(100, 24)).columns)
    console = Console(record=True, force_terminal=True, width=columns, file=StringIO())
    render_fn(console)
    return console.export_text(styles=True)


__all__ = ["Command", "CommandContext", "CommandRouter", "render_help_table", "render_rich"]
