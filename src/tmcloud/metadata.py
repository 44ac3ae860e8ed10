"""
Local and cloud sync descriptors.

Each side is cached after its first read. A push or pull updates both
caches in the same step. The local cache is also checked against a
digest of the dataset, so edits made outside the engine are seen.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from . import dataset as ds
from .context import SyncContext
from .errors import ConfigIncomplete, EncryptionError, MetadataUnavailable
from .models import METADATA_KEY, SyncMetadata
from .storage import content_type_for

logger = logging.getLogger("tmcloud.metadata")


class MetadataManager:
    """Caches and persists the last-known state of both sides."""

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx
        self._local: Optional[SyncMetadata] = None
        self._local_digest: Optional[str] = None
        self._cloud: Optional[SyncMetadata] = None

    async def get_local(self) -> SyncMetadata:
        """Local descriptor.

        The cached descriptor is kept while the dataset content matches
        what it described; an edit made outside the engine yields a fresh
        descriptor stamped with the current time.
        """
        data = await asyncio.to_thread(ds.snapshot, self.ctx.dataset, self.ctx.now_ms())
        digest = ds.fingerprint(data)
        if self._local is not None and digest == self._local_digest:
            return self._local

        if self._local is not None:
            logger.info("Local data changed since the last sync")
        self._local = SyncMetadata(
            timestamp=data["timestamp"],
            record_count=ds.record_count(data),
            payload=data,
        )
        self._local_digest = digest
        return self._local

    async def get_cloud(self) -> Optional[SyncMetadata]:
        """Cloud descriptor from the metadata object.

        Returns:
            The descriptor, or None when no metadata object exists yet.

        Raises:
            MetadataUnavailable: The object exists but cannot be decoded.
            StorageError: The store could not be read.
        """
        if self._cloud is not None:
            return self._cloud

        store = self.ctx.require_store()
        obj = await asyncio.to_thread(store.get, METADATA_KEY)
        if obj is None:
            logger.info("No cloud metadata found")
            return None

        encrypted = obj.metadata.get("encrypted") == "true"
        try:
            doc = await self.ctx.decode(obj.data, encrypted)
        except (ValueError, EncryptionError, ConfigIncomplete) as exc:
            logger.error("Error decoding cloud metadata: %s", exc)
            raise MetadataUnavailable(f"Cloud metadata is unreadable: {exc}") from exc

        if not isinstance(doc, dict):
            raise MetadataUnavailable("Cloud metadata is not a JSON object")

        payload = doc.get("data") if isinstance(doc.get("data"), dict) else None
        try:
            self._cloud = SyncMetadata(
                timestamp=int(doc.get("timestamp") or 0),
                record_count=int(doc.get("recordCount", ds.record_count(payload))),
                payload=payload,
            )
        except (TypeError, ValueError) as exc:
            raise MetadataUnavailable(f"Cloud metadata has bad fields: {exc}") from exc
        return self._cloud

    def set_local(self, metadata: SyncMetadata) -> None:
        self._local = metadata
        self._local_digest = ds.fingerprint(metadata.payload)

    def invalidate_local(self) -> None:
        self._local = None
        self._local_digest = None

    def remember_cloud(self, metadata: SyncMetadata) -> None:
        """Cache a cloud descriptor without uploading it."""
        self._cloud = metadata

    def invalidate_cloud(self) -> None:
        self._cloud = None

    async def set_cloud(self, metadata: SyncMetadata) -> None:
        """Upload the metadata object and cache it.

        The object keeps the ``data``/``timestamp`` shape older clients
        read, plus an explicit ``recordCount``.
        """
        store = self.ctx.require_store()
        doc = {
            "data": metadata.payload,
            "timestamp": metadata.timestamp,
            "recordCount": metadata.record_count,
        }
        body = await self.ctx.encode(doc, metadata.timestamp)
        await asyncio.to_thread(
            store.put,
            METADATA_KEY,
            body,
            {
                "contentType": content_type_for(METADATA_KEY),
                "syncType": "metadata",
                "encrypted": str(self.ctx.config.encryption_enabled).lower(),
                "timestamp": str(metadata.timestamp),
            },
        )
        self._cloud = metadata
        logger.info("Cloud metadata saved")
