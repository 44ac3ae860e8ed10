"""
Sync Engine -- orchestrates codec, store, metadata and direction.

    push  ->  read dataset -> encode (encrypt) -> upload dated backup -> metadata
    pull  ->  newest backup -> download -> decode (decrypt) -> validate -> restore
    sync  ->  local + cloud metadata -> decide -> push or pull

Callers go through the OperationQueue; the engine itself only refuses
re-entry, it does not serialize.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from . import dataset as ds
from .context import SyncContext
from .director import decide
from .errors import (
    BackupNotFound,
    InvalidDataStructure,
    StorageError,
    SyncInProgress,
)
from .metadata import MetadataManager
from .models import (
    BACKUP_PREFIX,
    METADATA_KEY,
    SNAPSHOT_PREFIX,
    ObjectInfo,
    SyncDirection,
    SyncMetadata,
)
from .storage import content_type_for

logger = logging.getLogger("tmcloud.engine")


def backup_key(when: datetime, encrypted: bool) -> str:
    """Date-keyed backup name; one object per UTC day."""
    day = when.astimezone(timezone.utc).date().isoformat()
    return f"{BACKUP_PREFIX}{day}{'.dat' if encrypted else '.json'}"


def snapshot_key(when: datetime, encrypted: bool) -> str:
    """Timestamp-unique snapshot name with ':' and '.' replaced by '-'."""
    utc = when.astimezone(timezone.utc)
    iso = f"{utc:%Y-%m-%dT%H:%M:%S}.{utc.microsecond // 1000:03d}Z"
    stamp = iso.replace(":", "-").replace(".", "-")
    return f"{SNAPSHOT_PREFIX}{stamp}{'.dat' if encrypted else '.json'}"


class SyncEngine:
    """Implements push, pull, bidirectional sync and snapshots.

    Args:
        ctx: Shared engine context.
        metadata: Metadata manager bound to the same context.
    """

    def __init__(self, ctx: SyncContext, metadata: Optional[MetadataManager] = None):
        self.ctx = ctx
        self.metadata = metadata or MetadataManager(ctx)
        self.is_running = False

    @asynccontextmanager
    async def _exclusive(self, what: str) -> AsyncIterator[None]:
        if self.is_running:
            raise SyncInProgress(f"Cannot {what}: another sync operation is running")
        self.is_running = True
        try:
            yield
        finally:
            self.is_running = False

    async def push(self) -> str:
        """Upload the local dataset as today's backup.

        Returns:
            Key of the uploaded backup object.
        """
        async with self._exclusive("push"):
            return await self._push()

    async def pull(self) -> str:
        """Restore the newest backup over the local dataset.

        Returns:
            Key of the restored backup object.
        """
        async with self._exclusive("pull"):
            return await self._pull()

    async def sync(self) -> SyncDirection:
        """Resolve direction from both sides' metadata and transfer.

        Returns:
            The direction that was carried out.
        """
        async with self._exclusive("sync"):
            self.ctx.require_store()
            local = await self.metadata.get_local()
            cloud = await self.metadata.get_cloud()
            direction = decide(local, cloud)

            if cloud is None:
                logger.info("No cloud metadata found - pushing to cloud")
            else:
                logger.info(
                    "Comparing data for sync direction: cloud t=%d n=%d, local t=%d n=%d -> %s",
                    cloud.timestamp,
                    cloud.record_count,
                    local.timestamp,
                    local.record_count,
                    direction.value,
                )

            if direction is SyncDirection.PULL:
                await self._pull()
            elif direction is SyncDirection.PUSH:
                await self._push()
            return direction

    async def run(self, direction: Optional[SyncDirection] = None) -> SyncDirection:
        """Force a direction, or resolve one when direction is None."""
        if direction is SyncDirection.PUSH:
            await self.push()
            return direction
        if direction is SyncDirection.PULL:
            await self.pull()
            return direction
        if direction is SyncDirection.NOOP:
            return direction
        return await self.sync()

    async def create_snapshot(self, name: Optional[str] = None) -> str:
        """Upload a never-overwritten snapshot, bypassing direction logic.

        Args:
            name: Human label stored with the snapshot.

        Returns:
            Key of the snapshot object.
        """
        async with self._exclusive("create snapshot"):
            store = self.ctx.require_store()
            now = self.ctx.now()
            ts = int(now.timestamp() * 1000)
            label = name or f"Snapshot {now.astimezone():%Y-%m-%d %H:%M:%S}"

            data = await asyncio.to_thread(ds.snapshot, self.ctx.dataset, ts)
            payload = {
                "data": data,
                "timestamp": ts,
                "isSnapshot": True,
                "snapshotName": label,
            }
            body = await self.ctx.encode(payload, ts)
            encrypted = self.ctx.config.encryption_enabled
            key = snapshot_key(now, encrypted)
            await asyncio.to_thread(
                store.put,
                key,
                body,
                {
                    "contentType": content_type_for(key),
                    "syncType": "snapshot",
                    "encrypted": str(encrypted).lower(),
                    "timestamp": str(ts),
                    "name": label,
                },
            )
            logger.info("Snapshot created: %s (%s)", key, label)
            return key

    async def list_backups(self) -> list[ObjectInfo]:
        """Backups and snapshots, newest first."""
        store = self.ctx.require_store()
        objects = await asyncio.to_thread(store.list, "typingmind-")
        objects = [o for o in objects if o.key != METADATA_KEY]
        return sorted(objects, key=lambda o: o.timestamp, reverse=True)

    async def download_backup(self, key: str) -> dict[str, Any]:
        """Fetch and decode one backup object without restoring it."""
        store = self.ctx.require_store()
        obj = await asyncio.to_thread(store.get, key)
        if obj is None:
            raise BackupNotFound(f"Backup not found: {key}")
        info = ObjectInfo(key=key, size=len(obj.data), metadata=obj.metadata)
        return await self._decode_backup(info, obj.data)

    async def restore_backup(self, key: str) -> str:
        """Restore a specific backup or snapshot over the local dataset."""
        async with self._exclusive("restore"):
            store = self.ctx.require_store()
            obj = await asyncio.to_thread(store.get, key)
            if obj is None:
                raise BackupNotFound(f"Backup not found: {key}")
            info = ObjectInfo(key=key, size=len(obj.data), metadata=obj.metadata)
            await self._restore(info, obj.data)
            return key

    async def delete_backup(self, key: str) -> None:
        async with self._exclusive("delete"):
            store = self.ctx.require_store()
            await asyncio.to_thread(store.delete, key)
            if key == METADATA_KEY:
                self.metadata.invalidate_cloud()

    async def _push(self) -> str:
        store = self.ctx.require_store()
        logger.info("Starting push to cloud")
        now = self.ctx.now()
        ts = int(now.timestamp() * 1000)

        data = await asyncio.to_thread(ds.snapshot, self.ctx.dataset, ts)
        payload = {"data": data, "timestamp": ts}
        body = await self.ctx.encode(payload, ts)

        encrypted = self.ctx.config.encryption_enabled
        key = backup_key(now, encrypted)
        logger.debug("Uploading to cloud with key: %s", key)
        await asyncio.to_thread(
            store.put,
            key,
            body,
            {
                "contentType": content_type_for(key),
                "syncType": "regular",
                "encrypted": str(encrypted).lower(),
                "timestamp": str(ts),
            },
        )

        pushed = SyncMetadata(timestamp=ts, record_count=ds.record_count(data), payload=data)
        await self.metadata.set_cloud(pushed)
        self.metadata.set_local(pushed)
        logger.info("Successfully pushed data to cloud")
        return key

    async def _pull(self) -> str:
        store = self.ctx.require_store()
        logger.info("Starting pull from cloud")

        backups = await asyncio.to_thread(store.list, BACKUP_PREFIX)
        if not backups:
            raise BackupNotFound("No backups found in cloud storage")

        latest = sorted(backups, key=lambda o: o.timestamp, reverse=True)[0]
        logger.debug("Downloading latest backup: %s", latest.key)
        obj = await asyncio.to_thread(store.get, latest.key)
        if obj is None:
            raise StorageError(f"Failed to download backup from cloud: {latest.key}")

        payload = await self._restore(latest, obj.data)
        data = payload["data"]
        cloud_ts = payload.get("timestamp")
        self.metadata.remember_cloud(
            SyncMetadata(
                timestamp=cloud_ts if isinstance(cloud_ts, int) else latest.timestamp,
                record_count=ds.record_count(data),
                payload=data,
            )
        )
        logger.info("Successfully pulled data from cloud")
        return latest.key

    async def _decode_backup(self, info: ObjectInfo, body: bytes) -> dict[str, Any]:
        try:
            payload = await self.ctx.decode(body, info.is_encrypted)
        except ValueError as exc:
            raise InvalidDataStructure(f"Backup {info.key} is not valid JSON: {exc}") from exc
        ds.validate_backup(payload)
        return payload

    async def _restore(self, info: ObjectInfo, body: bytes) -> dict[str, Any]:
        # Decode and validate fully before the destructive write.
        payload = await self._decode_backup(info, body)
        data = payload["data"]

        await asyncio.to_thread(self.ctx.dataset.write, data)

        restored = await asyncio.to_thread(ds.snapshot, self.ctx.dataset, self.ctx.now_ms())
        count = ds.record_count(restored)
        self.metadata.set_local(
            SyncMetadata(timestamp=restored["timestamp"], record_count=count, payload=restored)
        )
        logger.info("Application data restored from %s (%d chats)", info.key, count)
        return payload
