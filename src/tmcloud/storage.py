"""
Object store backends -- where backups travel.

Each backend stores named blobs with string user metadata. The engine
only talks to the abstract interface; swapping the vendor means adding
a backend and a factory entry.

Local: plain filesystem directory. For mounted buckets, NAS, USB drives.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import ConfigIncomplete, StorageError
from .models import ObjectInfo, StorageBackendType, StorageConfig, StoredObject

logger = logging.getLogger("tmcloud.storage")

META_DIR = ".meta"


def content_type_for(key: str) -> str:
    """Pick the content type recorded alongside an object."""
    if key.endswith(".json"):
        return "application/json"
    if key.endswith(".zip"):
        return "application/zip"
    return "application/octet-stream"


class ObjectStore(ABC):
    """Abstract object store."""

    @abstractmethod
    def put(self, key: str, data: bytes, metadata: dict[str, str]) -> None:
        """Write an object, replacing any existing one with the same key.

        Raises:
            StorageError: If the write fails.
        """

    @abstractmethod
    def get(self, key: str) -> Optional[StoredObject]:
        """Read an object.

        Returns:
            The object, or None if the key does not exist.

        Raises:
            StorageError: On any failure other than absence.
        """

    @abstractmethod
    def list(self, prefix: str = "") -> list[ObjectInfo]:
        """List objects whose key starts with prefix."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove an object."""

    @abstractmethod
    def available(self) -> bool:
        """Check if this backend is currently usable."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""


class LocalObjectStore(ObjectStore):
    """Filesystem object store.

    Blobs live directly under the root; user metadata lives in a JSON
    sidecar under ``.meta/``. Writes go through a temp file and
    ``os.replace`` so readers never see a half-written blob.
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self.meta_dir = self.root / META_DIR

    @property
    def name(self) -> str:
        return "local"

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StorageError(f"Invalid object key: {key!r}")
        return self.root / key

    def _meta_path(self, key: str) -> Path:
        return self.meta_dir / f"{key}.json"

    def _write_atomic(self, target: Path, data: bytes) -> None:
        fd, tmp = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, target)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _read_meta(self, key: str) -> dict[str, str]:
        meta_path = self._meta_path(key)
        if not meta_path.exists():
            return {}
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable metadata for %s: %s", key, exc)
            return {}
        if not isinstance(data, dict) or not isinstance(data.get("metadata", {}), dict):
            logger.warning("Malformed metadata for %s: expected a JSON object", key)
            return {}
        return {str(k): str(v) for k, v in data.get("metadata", {}).items()}

    def put(self, key: str, data: bytes, metadata: dict[str, str]) -> None:
        path = self._path(key)
        sidecar = {
            "contentType": content_type_for(key),
            "metadata": {k: str(v) for k, v in metadata.items()},
        }
        try:
            self.meta_dir.mkdir(parents=True, exist_ok=True)
            self._write_atomic(path, data)
            self._write_atomic(
                self._meta_path(key),
                json.dumps(sidecar, indent=2).encode("utf-8"),
            )
        except OSError as exc:
            logger.error("Failed to upload %s: %s", key, exc)
            raise StorageError(f"Failed to upload {key}: {exc}") from exc
        logger.info("Uploaded %s (%d bytes)", key, len(data))

    def get(self, key: str) -> Optional[StoredObject]:
        path = self._path(key)
        if not path.exists():
            logger.info("Object not found: %s", key)
            return None
        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.error("Failed to download %s: %s", key, exc)
            raise StorageError(f"Failed to download {key}: {exc}") from exc
        return StoredObject(data=data, metadata=self._read_meta(key))

    def list(self, prefix: str = "") -> list[ObjectInfo]:
        if not self.root.exists():
            return []
        objects = []
        try:
            for path in sorted(self.root.iterdir()):
                if not path.is_file() or path.name.startswith("."):
                    continue
                if not path.name.startswith(prefix):
                    continue
                stat = path.stat()
                objects.append(
                    ObjectInfo(
                        key=path.name,
                        size=stat.st_size,
                        last_modified=datetime.fromtimestamp(
                            stat.st_mtime, tz=timezone.utc
                        ),
                        metadata=self._read_meta(path.name),
                    )
                )
        except OSError as exc:
            logger.error("Failed to list objects: %s", exc)
            raise StorageError(f"Failed to list objects: {exc}") from exc
        return objects

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
            self._meta_path(key).unlink(missing_ok=True)
        except FileNotFoundError as exc:
            raise StorageError(f"Object not found: {key}") from exc
        except OSError as exc:
            logger.error("Failed to delete %s: %s", key, exc)
            raise StorageError(f"Failed to delete {key}: {exc}") from exc
        logger.info("Deleted %s", key)

    def available(self) -> bool:
        return self.root.is_dir()


def create_store(config: StorageConfig) -> ObjectStore:
    """Factory function to create the configured object store.

    Args:
        config: Storage configuration.

    Returns:
        Instantiated ObjectStore.

    Raises:
        ConfigIncomplete: If the backend's required settings are missing.
        ValueError: If the backend type is not supported.
    """
    if not config.is_configured:
        raise ConfigIncomplete("Storage location is not configured")

    factories = {
        StorageBackendType.LOCAL: lambda c: LocalObjectStore(c.path),
    }
    factory = factories.get(config.backend)
    if not factory:
        raise ValueError(f"Unsupported storage backend: {config.backend}")
    return factory(config)
