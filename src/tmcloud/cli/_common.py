"""Shared helpers for the CLI command modules.

Provides the Rich console, the home-directory default, and a helper
that builds a runtime and runs a coroutine against it.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import click
from rich.console import Console

from .. import TMCLOUD_HOME
from ..daemon import read_pid, setup_logging
from ..runtime import SyncRuntime

console = Console()

T = TypeVar("T")

home_option = click.option(
    "--home", default=TMCLOUD_HOME, type=click.Path(), help="tmcloud home directory."
)


def with_runtime(
    home: str, work: Callable[[SyncRuntime], Awaitable[T]], exclusive: bool = False
) -> T:
    """Build a runtime for ``home`` and run ``work`` on a fresh event loop.

    Follow-up operations queued by ``work`` finish before the loop closes.

    Args:
        home: tmcloud home directory.
        work: Coroutine function taking the runtime.
        exclusive: ``work`` changes the dataset, the bucket or the config.
            Refused while a daemon serves this home; its queue is the
            only writer.
    """
    home_path = Path(home).expanduser()
    if exclusive:
        pid = read_pid(home_path)
        if pid is not None:
            console.print(
                f"[bold red]Daemon is running[/] (PID {pid}) for {home_path}.\n"
                "  Stop it with 'tmcloud daemon stop' first."
            )
            raise SystemExit(1)

    ctx = click.get_current_context(silent=True)
    verbose = bool(ctx and ctx.find_root().obj and ctx.find_root().obj.get("verbose"))

    async def _main() -> T:
        runtime = SyncRuntime(home=home_path)
        setup_logging(home_path, verbose=verbose or runtime.config.console_logging)
        try:
            return await work(runtime)
        finally:
            await runtime.queue.join()

    return asyncio.run(_main())


def format_ms(ms: Any) -> str:
    """Render a millisecond epoch as local time, or a dash."""
    try:
        value = int(ms)
    except (TypeError, ValueError):
        return "-"
    if value <= 0:
        return "-"
    when = datetime.fromtimestamp(value / 1000, tz=timezone.utc).astimezone()
    return f"{when:%Y-%m-%d %H:%M:%S}"


def format_size(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size / 1024 / 1024:.1f} MB"
    if size >= 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size} B"
