"""
tmcloud daemon -- keeps the daily scheduler alive.

Runs one event loop in the foreground: the runtime's scheduler ticks,
queued operations drain, and SIGTERM/SIGINT stop it cleanly. A PID file
in the home directory lets ``tmcloud daemon stop|status`` find it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Optional

from . import TMCLOUD_HOME

logger = logging.getLogger("tmcloud.daemon")

PID_FILE = "daemon.pid"
LOG_DIR = "logs"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(
    home: Optional[Path] = None, verbose: bool = False, to_file: bool = False
) -> Optional[Path]:
    """Configure the ``tmcloud`` logger.

    Args:
        home: tmcloud home directory.
        verbose: DEBUG instead of WARNING on the console.
        to_file: Also log INFO and above to ``<home>/logs/daemon.log``.

    Returns:
        Path of the log file, if one was attached.
    """
    root = logging.getLogger("tmcloud")
    for old in list(root.handlers):
        root.removeHandler(old)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(console)

    if not to_file:
        return None

    home = (home or Path(TMCLOUD_HOME)).expanduser()
    log_dir = home / LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "daemon.log"
    handler = logging.FileHandler(log_file)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    return log_file


def write_pid(home: Path) -> None:
    pid_path = home / PID_FILE
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    pid_path.write_text(str(os.getpid()), encoding="utf-8")


def remove_pid(home: Path) -> None:
    (home / PID_FILE).unlink(missing_ok=True)


def read_pid(home: Optional[Path] = None) -> Optional[int]:
    """Read the daemon PID, clearing a stale PID file.

    Args:
        home: tmcloud home directory.

    Returns:
        PID as int, or None if not running.
    """
    home = (home or Path(TMCLOUD_HOME)).expanduser()
    pid_path = home / PID_FILE
    if not pid_path.exists():
        return None
    try:
        pid = int(pid_path.read_text(encoding="utf-8").strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        pid_path.unlink(missing_ok=True)
        return None


def is_running(home: Optional[Path] = None) -> bool:
    return read_pid(home) is not None


async def serve(home: Path, check_interval: Optional[float] = None) -> None:
    """Run a runtime until SIGTERM or SIGINT arrives."""
    from .runtime import SyncRuntime

    kwargs = {} if check_interval is None else {"check_interval": check_interval}
    runtime = SyncRuntime(home=home, **kwargs)
    stop = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    logger.info(
        "Daemon started - PID %d, mode=%s, schedule=%s",
        os.getpid(),
        runtime.config.sync_mode.value,
        runtime.config.schedule_label,
    )
    try:
        await runtime.serve(stop)
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        logger.info("Daemon stopped.")


def run_daemon(home: Optional[Path] = None, check_interval: Optional[float] = None) -> None:
    """Blocking entry point: PID file, log file, event loop."""
    home = (home or Path(TMCLOUD_HOME)).expanduser()
    write_pid(home)
    try:
        asyncio.run(serve(home, check_interval))
    finally:
        remove_pid(home)
