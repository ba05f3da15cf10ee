"""Command for save-game synchronization."""

from __future__ import annotations

from typing import List, Sequence

from rich.console import Console
from rich.table import Table

from ..router import Command, CommandContext, render_rich
from ..sync import SaveEntry, SyncClient, SyncSettings


def _handler(context: CommandContext, args: List[str]) -> str:
    """Manage save-game synchronization."""

    if not args:
        return _show_status(context)

    subcommand = args[0].lower()

    if subcommand == "status":
        return _show_status(context)
    elif subcommand == "diff":
        return _show_diff(context)
    elif subcommand == "run":
        return _run_sync(context, dry_run=False)
    elif subcommand in {"dry-run", "dryrun"}:
        return _run_sync(context, dry_run=True)
    elif subcommand == "help":
        return _show_help()
    else:
        return f"[sync] Unknown subcommand '{subcommand}'. Use 'sync help' for usage."


def _build_client(context: CommandContext) -> SyncClient:
    settings = SyncSettings.from_config(context.config.merged)
    return SyncClient(settings, transport=context.metadata.get("transport"))


def _show_status(context: CommandContext) -> str:
    """Show where saves are read from and synced to."""
    try:
        client = _build_client(context)
    except ValueError as e:
        return f"[sync] Invalid configuration: {e}"

    status = client.get_status()

    def _render(console: Console) -> None:
        table = Table(title="Save Sync Status", show_header=False)
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("Platform", status["platform"])
        table.add_row("Save Root", status["save_root"] or "(unresolved)")
        table.add_row("Root Exists", str(status["save_root_exists"]))
        table.add_row("Local Saves", str(status["local_saves"]))

        endpoints = status["endpoints"]
        table.add_row("Manifest", endpoints["manifest"])
        table.add_row("Upload", endpoints["upload"])
        table.add_row("Download", endpoints["download"])
        table.add_row("Timeouts", f"connect {endpoints['connect_timeout']}s, io {endpoints['io_timeout']}s")
        table.add_row("Retries", str(endpoints["retries"]))

        if status["error"]:
            table.add_row("Error", f"[red]{status['error']}[/red]")

        console.print(table)

    return render_rich(_render)


def _run_sync(context: CommandContext, dry_run: bool) -> str:
    """Run sync operation."""
    try:
        client = _build_client(context)
    except ValueError as e:
        return f"[sync] Invalid configuration: {e}"

    result = client.run(dry_run=dry_run)
    context.metadata["last_result"] = result

    if result.success:
        lines = [f"[sync] Sync completed: {result.message}"]
    elif result.plan is None:
        return f"[sync] Sync failed: {result.message}"
    else:
        lines = [f"[sync] Sync finished with errors: {result.message}"]

    if result.uploaded > 0:
        lines.append(f"  Uploaded: {result.uploaded} saves")
    if result.downloaded > 0:
        lines.append(f"  Downloaded: {result.downloaded} saves")
    if result.skipped > 0:
        lines.append(f"  Skipped: {result.skipped} saves")
    for error in result.errors:
        lines.append(f"  ! {error}")
    return "\n".join(lines)


def _show_diff(context: CommandContext) -> str:
    """Show what a sync would transfer."""
    try:
        client = _build_client(context)
    except ValueError as e:
        return f"[sync] Invalid configuration: {e}"

    result = client.run(dry_run=True)
    plan = result.plan
    if plan is None:
        return f"[sync] Cannot compute diff: {result.message}"

    if not plan.has_changes and not plan.rejected:
        return "[sync] Local saves and remote store are in sync."

    def _render(console: Console) -> None:
        console.print(f"Summary: {plan.summary()}\n")

        if plan.uploads:
            console.print("[green]To Upload:[/green]")
            _print_entries(console, plan.uploads, "+")

        if plan.downloads:
            console.print("[blue]To Download:[/blue]")
            _print_entries(console, plan.downloads, "-")

        if plan.rejected:
            console.print("[yellow]Name collisions:[/yellow]")
            for error in plan.rejected:
                console.print(f"  ! {error}")

    return render_rich(_render)


def _print_entries(console: Console, entries: Sequence[SaveEntry], marker: str) -> None:
    for entry in entries[:10]:
        console.print(f"  {marker} {entry.name} ({entry.last_modified:%Y-%m-%d %H:%M:%S})")
    if len(entries) > 10:
        console.print(f"  ... and {len(entries) - 10} more")
    console.print()


def _show_help() -> str:
    """Show sync command help."""
    return """[sync] Usage:
  sync              Show sync status
  sync status       Show sync status
  sync diff         Show saves that would be uploaded or downloaded
  sync run          Upload newer local saves, then download newer remote saves
  sync dry-run      Reconcile without transferring anything
  sync help         Show this help

Configuration (in ~/.config/minesync/*.yml):
  saves:
    root: ""            # empty: use the platform default
    platform: ""        # linux, darwin, win32, win32-uwp
  endpoints:
    manifest: 127.0.0.1:9998
    upload: 127.0.0.1:9999
    download: 127.0.0.1:9997
  transport:
    connect_timeout: 5.0
    io_timeout: 60.0
    retries: 2"""


COMMAND = Command(
    name="sync",
    description="Synchronize save-games. Usage: sync [status|diff|run|dry-run|help]",
    handler=_handler,
)
