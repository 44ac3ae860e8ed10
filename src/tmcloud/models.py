"""
Sync data models -- configuration, metadata and envelope headers.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigIncomplete

BACKUP_PREFIX = "typingmind-backup-"
SNAPSHOT_PREFIX = "typingmind-snapshot-"
METADATA_KEY = "typingmind-metadata.json"

ENVELOPE_VERSION = 1


class SyncMode(str, Enum):
    """How scheduled operations behave."""

    DISABLED = "disabled"
    BACKUP = "backup"
    SYNC = "sync"


class SyncDirection(str, Enum):
    """Outcome of direction resolution."""

    PUSH = "push"
    PULL = "pull"
    NOOP = "noop"


class StorageBackendType(str, Enum):
    """Supported object store backends."""

    LOCAL = "local"


class StorageConfig(BaseModel):
    """Where backup objects live."""

    backend: StorageBackendType = StorageBackendType.LOCAL

    # Local filesystem (mounted bucket, NAS, USB drive)
    path: Optional[Path] = None

    @property
    def is_configured(self) -> bool:
        return self.path is not None and str(self.path) != ""


class SyncConfig(BaseModel):
    """Complete sync configuration, validated at load and save time."""

    sync_mode: SyncMode = SyncMode.DISABLED
    sync_hour: int = Field(default=9, ge=0, le=23)
    sync_minute: int = Field(default=0, ge=0, le=59)
    encryption_enabled: bool = False
    encryption_key: str = ""
    storage: StorageConfig = Field(default_factory=StorageConfig)

    last_sync_time: int = 0
    last_sync_date: str = ""
    console_logging: bool = False
    operation_timeout: float = Field(default=300.0, gt=0)

    def check_complete(self) -> None:
        """Fail fast when the config cannot drive any operation.

        Raises:
            ConfigIncomplete: Storage is unset, or encryption is enabled
                without a key.
        """
        if not self.storage.is_configured:
            raise ConfigIncomplete("Storage location is not configured")
        if self.encryption_enabled and not self.encryption_key:
            raise ConfigIncomplete(
                "Encryption key not configured but encryption is enabled"
            )

    @property
    def schedule_label(self) -> str:
        return f"{self.sync_hour}:{self.sync_minute:02d}"


class SyncMetadata(BaseModel):
    """Last-known state of one side (local or cloud)."""

    timestamp: int = 0
    record_count: int = 0
    payload: Optional[dict[str, Any]] = None


class EnvelopeHeader(BaseModel):
    """JSON header of an encrypted envelope.

    Field aliases are the on-disk key names; their order is the
    serialization order and must not change.
    """

    model_config = ConfigDict(populate_by_name=True)

    version: int = ENVELOPE_VERSION
    algorithm: str = "AES-GCM"
    key_derivation: str = Field(default="PBKDF2", alias="keyDerivation")
    iterations: int = 100_000
    salt_size: int = Field(default=16, alias="saltSize")
    iv_size: int = Field(default=12, alias="ivSize")
    timestamp: int = 0


class ObjectInfo(BaseModel):
    """A listed object in the store."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def timestamp(self) -> int:
        """Embedded write timestamp (epoch ms), 0 when absent."""
        try:
            return int(self.metadata.get("timestamp", 0))
        except (TypeError, ValueError):
            return 0

    @property
    def is_encrypted(self) -> bool:
        return self.metadata.get("encrypted") == "true" or self.key.endswith(".dat")


class StoredObject(BaseModel):
    """A downloaded object body with its user metadata."""

    data: bytes
    metadata: dict[str, str] = Field(default_factory=dict)
