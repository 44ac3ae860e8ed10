"""Daemon commands: start, stop, status."""

from __future__ import annotations

import json
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel

from ._common import console, home_option


def register_daemon_commands(main: click.Group) -> None:
    """Register the daemon command group."""

    @main.group()
    def daemon():
        """Background daemon running the daily sync schedule."""

    @daemon.command("start")
    @home_option
    @click.option("--interval", default=None, type=float, help="Scheduler check interval in seconds.")
    @click.pass_context
    def daemon_start(ctx: click.Context, home: str, interval: Optional[float]):
        """Run the scheduler in the foreground until SIGTERM or Ctrl+C.

        Use a process supervisor (systemd, launchd) to keep it in the
        background.
        """
        from ..config import YamlConfigStore
        from ..daemon import is_running, run_daemon, setup_logging

        home_path = Path(home).expanduser()
        if is_running(home_path):
            console.print("[yellow]Daemon is already running.[/]")
            sys.exit(0)

        config = YamlConfigStore(home_path).load()
        verbose = bool((ctx.find_root().obj or {}).get("verbose")) or config.console_logging
        log_file = setup_logging(home_path, verbose=verbose, to_file=True)

        console.print(f"\n  [green]Starting daemon[/] (mode [cyan]{config.sync_mode.value}[/])")
        console.print(f"  Schedule: daily at {config.schedule_label}")
        console.print(f"  Log: {log_file}")
        console.print(f"  PID: {os.getpid()}")
        console.print("  [dim]Running in foreground (Ctrl+C to stop)[/]\n")
        run_daemon(home_path, interval)

    @daemon.command("stop")
    @home_option
    def daemon_stop(home: str):
        """Stop the running daemon."""
        from ..daemon import PID_FILE, read_pid

        home_path = Path(home).expanduser()
        pid = read_pid(home_path)
        if pid is None:
            console.print("[yellow]Daemon is not running.[/]")
            return

        try:
            os.kill(pid, signal.SIGTERM)
            console.print(f"\n  [green]Sent SIGTERM to daemon (PID {pid})[/]\n")
        except ProcessLookupError:
            console.print("[yellow]Daemon process not found - cleaning up PID file.[/]")
            (home_path / PID_FILE).unlink(missing_ok=True)

    @daemon.command("status")
    @home_option
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def daemon_status(home: str, json_out: bool):
        """Show whether the daemon is running and when it last synced."""
        from ..config import YamlConfigStore
        from ..daemon import read_pid

        home_path = Path(home).expanduser()
        pid = read_pid(home_path)
        config = YamlConfigStore(home_path).load()
        status = {
            "running": pid is not None,
            "pid": pid,
            "sync_mode": config.sync_mode.value,
            "schedule": config.schedule_label,
            "last_sync_date": config.last_sync_date or None,
        }

        if json_out:
            click.echo(json.dumps(status, indent=2))
            return

        if pid is None:
            console.print("\n  [yellow]Daemon is not running.[/]\n")
            return

        console.print()
        console.print(Panel(
            f"PID: [bold]{pid}[/]\n"
            f"Mode: [bold]{status['sync_mode']}[/]\n"
            f"Schedule: daily at {status['schedule']}\n"
            f"Last daily run: {status['last_sync_date'] or '[dim]never[/]'}",
            title="[green]Daemon Running[/]",
            border_style="green",
        ))
        console.print()
