"""
Engine context -- the shared state every component works against.

One context per dataset. It owns the config, the store and the dataset
handle, and knows how to turn a payload into stored bytes and back.
Blocking work (key derivation, cipher, JSON on large datasets) is
pushed to a worker thread so the event loop only suspends at awaits.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from . import crypto
from .dataset import LocalDataset
from .errors import ConfigIncomplete
from .models import SyncConfig
from .storage import ObjectStore

logger = logging.getLogger("tmcloud.context")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncContext:
    """Explicit replacement for module-level config and client globals."""

    config: SyncConfig
    dataset: LocalDataset
    store: Optional[ObjectStore] = None
    clock: Callable[[], datetime] = field(default=utcnow)

    def now(self) -> datetime:
        return self.clock()

    def now_ms(self) -> int:
        return int(self.clock().timestamp() * 1000)

    def require_store(self) -> ObjectStore:
        """Return the store, failing fast when the config is incomplete."""
        self.config.check_complete()
        if self.store is None:
            raise ConfigIncomplete("Object store is not initialized")
        return self.store

    async def encode(self, payload: dict[str, Any], timestamp: int) -> bytes:
        """Serialize a payload, encrypting it when encryption is on."""
        body = json.dumps(payload).encode("utf-8")
        if not self.config.encryption_enabled:
            return body
        if not self.config.encryption_key:
            raise ConfigIncomplete(
                "Encryption key not configured but encryption is enabled"
            )
        logger.debug("Encrypting %d bytes", len(body))
        return await asyncio.to_thread(
            crypto.encrypt, body, self.config.encryption_key, timestamp
        )

    async def decode(self, data: bytes, encrypted: bool) -> Any:
        """Decrypt if needed and parse JSON.

        Raises:
            ConfigIncomplete: Encrypted data but no key configured.
            json.JSONDecodeError: Body is not JSON.
        """
        if encrypted:
            if not self.config.encryption_key:
                raise ConfigIncomplete(
                    "Encryption key not configured but the backup is encrypted"
                )
            logger.debug("Decrypting %d bytes", len(data))
            data = await asyncio.to_thread(
                crypto.decrypt, data, self.config.encryption_key
            )
        return json.loads(data.decode("utf-8"))
