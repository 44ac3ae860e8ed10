"""Backup commands: list, download, restore, delete."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel
from rich.table import Table

from ._common import console, format_ms, format_size, home_option, with_runtime
from ..errors import TmCloudError


def register_backup_commands(main: click.Group) -> None:
    """Register the backups command group."""

    @main.group()
    def backups():
        """Cloud backups and snapshots.

        Browse what is stored, download a copy, restore one over the
        local data, or delete it.
        """

    @backups.command("list")
    @home_option
    def backups_list(home: str):
        """List backups and snapshots, newest first."""
        try:
            items = with_runtime(home, lambda rt: rt.list_backups())
        except TmCloudError as exc:
            console.print(f"[red]{exc}[/]")
            raise SystemExit(1)

        if not items:
            console.print("\n[dim]No backups found.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Key", style="cyan")
        table.add_column("Type")
        table.add_column("Size", justify="right")
        table.add_column("Created", style="dim")
        table.add_column("Name")

        for info in items:
            kind = info.metadata.get("syncType", "regular")
            lock = " [green](encrypted)[/]" if info.is_encrypted else ""
            table.add_row(
                info.key,
                kind + lock,
                format_size(info.size),
                format_ms(info.timestamp),
                info.metadata.get("name", ""),
            )

        console.print(f"\n[bold]{len(items)}[/] backup(s):\n")
        console.print(table)
        console.print()

    @backups.command("download")
    @click.argument("key")
    @home_option
    @click.option("--output", "-o", default=None, type=click.Path(), help="Write to this file.")
    def backups_download(key: str, home: str, output: Optional[str]):
        """Download and decode a backup as JSON.

        Examples:

            tmcloud backups download typingmind-backup-2026-10-18.dat -o backup.json
        """
        try:
            payload = with_runtime(home, lambda rt: rt.download_backup(key))
        except TmCloudError as exc:
            console.print(f"[red]{exc}[/]")
            raise SystemExit(1)

        text = json.dumps(payload, indent=2)
        if output is None:
            click.echo(text)
            return
        out = Path(output).expanduser()
        out.write_text(text, encoding="utf-8")
        console.print(f"\n  [green]Saved[/] {key} to [cyan]{out}[/]\n")

    @backups.command("restore")
    @click.argument("key")
    @home_option
    @click.confirmation_option(prompt="Replace local data with this backup?")
    def backups_restore(key: str, home: str):
        """Restore a backup or snapshot over the local data."""
        try:
            with_runtime(home, lambda rt: rt.restore_backup(key), exclusive=True)
        except TmCloudError as exc:
            console.print(f"[red]Restore failed: {exc}[/]")
            raise SystemExit(1)
        console.print(Panel(
            f"[bold green]Restore complete[/]\nFrom: [cyan]{key}[/]",
            title="Restore",
            border_style="green",
        ))

    @backups.command("delete")
    @click.argument("key")
    @home_option
    @click.confirmation_option(prompt="Delete this backup from cloud storage?")
    def backups_delete(key: str, home: str):
        """Delete a backup or snapshot from cloud storage."""
        try:
            with_runtime(home, lambda rt: rt.delete_backup(key), exclusive=True)
        except TmCloudError as exc:
            console.print(f"[red]Delete failed: {exc}[/]")
            raise SystemExit(1)
        console.print(f"\n  [green]Deleted[/] {key}\n")
