"""Command listing the per-platform save directories."""

from __future__ import annotations

from typing import List

from rich.console import Console
from rich.table import Table

from ..errors import PathResolutionError
from ..platform_paths import PLATFORM_SAVE_ROOTS, normalize_platform, resolve_save_root
from ..router import Command, CommandContext, render_rich


def _handler(context: CommandContext, args: List[str]) -> str:
    saves_cfg = (context.config.merged or {}).get("saves", {}) or {}
    current = normalize_platform(args[0] if args else saves_cfg.get("platform") or None)

    def _render(console: Console) -> None:
        table = Table(title="Save Directories", show_header=True, header_style="bold cyan")
        table.add_column("Platform", style="green", no_wrap=True)
        table.add_column("Base")
        table.add_column("Resolved Path", overflow="fold")

        for key, rule in PLATFORM_SAVE_ROOTS.items():
            try:
                resolved = str(resolve_save_root(key))
            except PathResolutionError as exc:
                resolved = f"[red]{exc}[/red]"
            marker = f"{key} *" if key == current else key
            base = "~" if rule.base == "home" else f"%{rule.base}%"
            table.add_row(marker, base, resolved)

        console.print(table)
        override = saves_cfg.get("root")
        if override:
            console.print(f"Configured override: {override}")

    return render_rich(_render)


COMMAND = Command(
    name="paths",
    description="Show where each platform keeps its save-games.",
    handler=_handler,
)
