"""
Tests for daemon helpers -- PID file handling and logging setup.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from tmcloud.daemon import (
    PID_FILE,
    is_running,
    read_pid,
    remove_pid,
    setup_logging,
    write_pid,
)


class TestPidFile:
    def test_no_pid_file(self, tmp_home: Path):
        assert read_pid(tmp_home) is None
        assert not is_running(tmp_home)

    def test_own_pid_is_running(self, tmp_home: Path):
        write_pid(tmp_home)
        assert read_pid(tmp_home) == os.getpid()
        assert is_running(tmp_home)

        remove_pid(tmp_home)
        assert not (tmp_home / PID_FILE).exists()

    def test_garbage_pid_file_removed(self, tmp_home: Path):
        (tmp_home / PID_FILE).write_text("not-a-pid")
        assert read_pid(tmp_home) is None
        assert not (tmp_home / PID_FILE).exists()


class TestSetupLogging:
    def test_console_only(self, tmp_home: Path):
        assert setup_logging(tmp_home) is None
        assert len(logging.getLogger("tmcloud").handlers) == 1

    def test_file_handler(self, tmp_home: Path):
        log_file = setup_logging(tmp_home, verbose=True, to_file=True)
        assert log_file == tmp_home / "logs" / "daemon.log"

        logging.getLogger("tmcloud.test").info("hello daemon")
        for handler in logging.getLogger("tmcloud").handlers:
            handler.flush()
        assert "hello daemon" in log_file.read_text()
        assert "[tmcloud.test] INFO" in log_file.read_text()

    def test_repeated_setup_replaces_handlers(self, tmp_home: Path):
        setup_logging(tmp_home)
        setup_logging(tmp_home)
        assert len(logging.getLogger("tmcloud").handlers) == 1
