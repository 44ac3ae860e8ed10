"""Shared test fixtures for tmcloud."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tmcloud.context import SyncContext
from tmcloud.dataset import JsonFileDataset
from tmcloud.models import StorageConfig, SyncConfig, SyncMode
from tmcloud.storage import LocalObjectStore


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def sample_data(chats: int = 2) -> dict:
    return {
        "chats": {f"chat-{i}": {"title": f"Chat {i}", "messages": [i]} for i in range(chats)},
        "settings": {"theme": "dark"},
        "favorites": ["chat-0"],
        "folders": [{"id": "f1", "name": "Work"}],
    }


@pytest.fixture(autouse=True)
def _reset_tmcloud_logging():
    """CLI runs attach console handlers; drop them between tests."""
    yield
    root = logging.getLogger("tmcloud")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide a temporary tmcloud home directory."""
    home = tmp_path / ".tmcloud"
    home.mkdir()
    return home


@pytest.fixture
def bucket(tmp_path: Path) -> Path:
    path = tmp_path / "bucket"
    path.mkdir()
    return path


@pytest.fixture
def store(bucket: Path) -> LocalObjectStore:
    return LocalObjectStore(bucket)


@pytest.fixture
def dataset(tmp_path: Path) -> JsonFileDataset:
    ds = JsonFileDataset(tmp_path / "local" / "appdata.json")
    ds.write(sample_data())
    return ds


@pytest.fixture
def config(bucket: Path) -> SyncConfig:
    return SyncConfig(sync_mode=SyncMode.SYNC, storage=StorageConfig(path=bucket))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 9, 30, 0, 123000, tzinfo=timezone.utc))


@pytest.fixture
def ctx(config, dataset, store, clock) -> SyncContext:
    return SyncContext(config=config, dataset=dataset, store=store, clock=clock)
