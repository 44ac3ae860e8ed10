"""Sync commands: sync, snapshot, status."""

from __future__ import annotations

import sys
from typing import Optional

import click
from rich.panel import Panel

from ._common import console, home_option, with_runtime
from ..errors import TmCloudError


def register_sync_commands(main: click.Group) -> None:
    """Register sync, snapshot and status."""

    @main.command("sync")
    @home_option
    @click.option("--push", "direction", flag_value="push", help="Upload local data.")
    @click.option("--pull", "direction", flag_value="pull", help="Restore the newest backup.")
    @click.option("--force", is_flag=True, help="Run even when sync is disabled.")
    def sync_cmd(home: str, direction: Optional[str], force: bool):
        """Synchronize local data with cloud storage.

        Without --push or --pull the direction follows the sync mode:
        backup mode pushes, sync mode compares both sides.

        Examples:

            tmcloud sync

            tmcloud sync --pull --force
        """
        console.print("\n  [cyan]Synchronizing...[/]", end=" ")
        ok = with_runtime(
            home,
            lambda rt: rt.perform_sync(force=force, direction=direction),
            exclusive=True,
        )
        if ok:
            console.print("[green]done[/]\n")
            return
        console.print("[red]failed[/]")
        console.print("  [dim]Check configuration with 'tmcloud config show' or rerun with -v.[/]\n")
        sys.exit(1)

    @main.command("snapshot")
    @click.argument("name", required=False)
    @home_option
    def snapshot_cmd(name: Optional[str], home: str):
        """Create a named snapshot that is never overwritten.

        Examples:

            tmcloud snapshot "before cleanup"
        """
        try:
            key = with_runtime(home, lambda rt: rt.create_snapshot(name), exclusive=True)
        except TmCloudError as exc:
            console.print(f"[red]Snapshot failed: {exc}[/]")
            raise SystemExit(1)
        console.print(Panel(
            f"[bold green]Snapshot created[/]\nKey: [cyan]{key}[/]",
            title="Snapshot",
            border_style="green",
        ))

    @main.command("status")
    @home_option
    def status_cmd(home: str):
        """Show sync configuration, schedule and recent activity."""

        async def _status(rt):
            return rt.status()

        st = with_runtime(home, _status)
        mode = st["sync_mode"]
        color = {"sync": "green", "backup": "cyan"}.get(mode, "yellow")
        encryption = "[green]on[/]" if st["encryption"] else "[yellow]off[/]"
        storage = st["storage"] or "[red]not configured[/]"

        console.print()
        console.print(Panel(
            f"Mode: [{color}]{mode.upper()}[/]\n"
            f"Schedule: daily at [bold]{st['schedule']}[/]\n"
            f"Encryption: {encryption}\n"
            f"Storage: {storage}\n"
            f"Last sync: {st['last_sync'] or '[dim]never[/]'}\n"
            f"Last daily run: {st['last_sync_date'] or '[dim]never[/]'}",
            title="tmcloud",
            border_style=color,
        ))
        console.print()
