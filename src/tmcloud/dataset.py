"""
The local application dataset.

The dataset is four collections: chats (keyed by chat id), settings,
favorites and folders. Hosts plug their own storage in by subclassing
LocalDataset; JsonFileDataset keeps everything in one JSON file that is
replaced atomically, so a restore either lands completely or not at all.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from .errors import InvalidDataStructure

logger = logging.getLogger("tmcloud.dataset")

COLLECTIONS: dict[str, type] = {
    "chats": dict,
    "settings": dict,
    "favorites": list,
    "folders": list,
}


class LocalDataset(ABC):
    """Abstract local dataset."""

    @abstractmethod
    def read(self) -> dict[str, Any]:
        """Return all collections as plain JSON-compatible values."""

    @abstractmethod
    def write(self, data: dict[str, Any]) -> None:
        """Replace the stored collections with the given ones."""


class JsonFileDataset(LocalDataset):
    """Dataset persisted as a single JSON document."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def read(self) -> dict[str, Any]:
        stored: dict[str, Any] = {}
        if self.path.exists():
            try:
                stored = json.loads(self.path.read_text(encoding="utf-8")) or {}
            except json.JSONDecodeError as exc:
                logger.error("Dataset file is not valid JSON: %s", exc)
                raise
            if not isinstance(stored, dict):
                raise InvalidDataStructure(
                    f"Dataset file {self.path} does not hold a JSON object"
                )
        return {
            name: stored.get(name) if isinstance(stored.get(name), kind) else kind()
            for name, kind in COLLECTIONS.items()
        }

    def write(self, data: dict[str, Any]) -> None:
        current = self.read() if self.path.exists() else {}
        merged = {
            name: data[name] if data.get(name) is not None else current.get(name, kind())
            for name, kind in COLLECTIONS.items()
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".appdata-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(merged, fh)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        logger.info("Dataset written: %d chats", len(merged["chats"]))


def snapshot(dataset: LocalDataset, timestamp: int) -> dict[str, Any]:
    """Capture the dataset as backup ``data`` with its capture time."""
    data = dataset.read()
    data["timestamp"] = timestamp
    return data


def fingerprint(data: dict[str, Any] | None) -> Optional[str]:
    """Content digest of the collections, ignoring the capture timestamp."""
    if data is None:
        return None
    body = {name: data.get(name) for name in COLLECTIONS}
    return hashlib.sha256(
        json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")
    ).hexdigest()


def record_count(data: dict[str, Any] | None) -> int:
    """Number of chats in a dataset snapshot; 0 when absent."""
    if not data or not isinstance(data.get("chats"), dict):
        return 0
    return len(data["chats"])


def validate_backup(payload: Any) -> dict[str, Any]:
    """Check a decoded backup before anything local is overwritten.

    Args:
        payload: Decoded backup document.

    Returns:
        The inner ``data`` mapping.

    Raises:
        InvalidDataStructure: If required fields are missing or mistyped.
    """
    if not isinstance(payload, dict):
        raise InvalidDataStructure("Backup is not a JSON object")
    data = payload.get("data")
    if not isinstance(data, dict):
        raise InvalidDataStructure("Invalid backup data structure: missing 'data'")
    if not isinstance(data.get("chats"), dict):
        raise InvalidDataStructure("Invalid data structure: missing 'chats'")
    for name, kind in COLLECTIONS.items():
        value = data.get(name)
        if value is not None and not isinstance(value, kind):
            raise InvalidDataStructure(
                f"Invalid data structure: '{name}' must be a {kind.__name__}"
            )
    return data
