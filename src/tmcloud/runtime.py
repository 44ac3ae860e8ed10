"""
Sync runtime -- the host-facing surface.

Loads config and dataset from the tmcloud home, wires the context,
queue, engine and scheduler together, and exposes the operations a
host calls. Every mutation is submitted to the queue; nothing here
calls the engine directly.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from . import TMCLOUD_HOME
from .config import ConfigStore, YamlConfigStore
from .context import SyncContext, utcnow
from .dataset import JsonFileDataset, LocalDataset
from .engine import SyncEngine
from .errors import ConfigIncomplete
from .models import ObjectInfo, SyncConfig, SyncDirection, SyncMode
from .queue import OperationQueue
from .scheduler import CHECK_INTERVAL, DailyScheduler
from .storage import ObjectStore, create_store

logger = logging.getLogger("tmcloud.runtime")


class SyncRuntime:
    """One dataset, one queue, one engine.

    Args:
        home: tmcloud home directory. Defaults to ~/.tmcloud.
        config_store: Config persistence. Defaults to YAML under home.
        dataset: Local dataset. Defaults to ``<home>/data/appdata.json``.
        store: Object store. Defaults to the one the config describes.
        clock: UTC clock used for timestamps and object names.
        check_interval: Scheduler tick interval in seconds.
    """

    def __init__(
        self,
        home: Optional[Path] = None,
        config_store: Optional[ConfigStore] = None,
        dataset: Optional[LocalDataset] = None,
        store: Optional[ObjectStore] = None,
        clock: Callable[[], datetime] = utcnow,
        check_interval: float = CHECK_INTERVAL,
    ):
        self.home = (home or Path(TMCLOUD_HOME)).expanduser()
        self.config_store = config_store or YamlConfigStore(self.home)
        config = self.config_store.load()

        self.ctx = SyncContext(
            config=config,
            dataset=dataset or JsonFileDataset(self.home / "data" / "appdata.json"),
            store=store,
            clock=clock,
        )
        if store is None:
            self._connect_store()

        self.queue = OperationQueue(default_timeout=config.operation_timeout)
        self.engine = SyncEngine(self.ctx)
        self.scheduler = DailyScheduler(
            self.ctx,
            self.queue,
            self.run_scheduled,
            self.config_store,
            check_interval=check_interval,
        )
        self._serving = False

    @property
    def config(self) -> SyncConfig:
        return self.ctx.config

    def _connect_store(self) -> None:
        try:
            self.ctx.store = create_store(self.ctx.config.storage)
        except ConfigIncomplete:
            self.ctx.store = None

    async def _stamp_sync_time(self) -> None:
        stamp = self.ctx.now_ms()
        self.config.last_sync_time = stamp
        await asyncio.to_thread(self.config_store.update, last_sync_time=stamp)

    async def run_scheduled(self) -> SyncDirection:
        """The mode's scheduled work: backup pushes, sync resolves."""
        mode = self.config.sync_mode
        if mode is SyncMode.BACKUP:
            logger.info("In backup mode - pushing to cloud")
            direction = await self.engine.run(SyncDirection.PUSH)
        elif mode is SyncMode.SYNC:
            direction = await self.engine.run()
        else:
            return SyncDirection.NOOP
        await self._stamp_sync_time()
        return direction

    async def perform_sync(
        self, force: bool = False, direction: Optional[str] = None
    ) -> bool:
        """Run a manual sync through the queue.

        Args:
            force: Run even when sync mode is disabled.
            direction: "push" or "pull" to skip direction resolution.

        Returns:
            True if the sync completed.
        """
        try:
            self.config.check_complete()
        except ConfigIncomplete as exc:
            logger.error("Sync is not configured: %s", exc)
            return False

        if self.config.sync_mode is SyncMode.DISABLED and not force:
            logger.info("Sync is disabled")
            return False

        forced = SyncDirection(direction) if direction else None
        if forced is None and self.config.sync_mode is SyncMode.BACKUP:
            forced = SyncDirection.PUSH

        async def _manual() -> SyncDirection:
            result = await self.engine.run(forced)
            await self._stamp_sync_time()
            return result

        try:
            await self.queue.enqueue(
                "manual-sync", _manual, timeout=self.config.operation_timeout
            )
        except Exception as exc:
            logger.error("Synchronization failed: %s", exc)
            return False

        logger.info("Synchronization completed successfully")
        return True

    async def create_snapshot(self, name: Optional[str] = None) -> str:
        """Queue a snapshot and wait for it.

        Returns:
            Key of the snapshot object.
        """
        return await self.queue.enqueue(
            "snapshot",
            lambda: self.engine.create_snapshot(name),
            timeout=self.config.operation_timeout,
        )

    async def list_backups(self) -> list[ObjectInfo]:
        return await self.engine.list_backups()

    async def download_backup(self, key: str) -> dict[str, Any]:
        return await self.engine.download_backup(key)

    async def restore_backup(self, key: str) -> str:
        return await self.queue.enqueue(
            f"restore-backup:{key}",
            lambda: self.engine.restore_backup(key),
            timeout=self.config.operation_timeout,
        )

    async def delete_backup(self, key: str) -> None:
        await self.queue.enqueue(
            f"delete-backup:{key}",
            lambda: self.engine.delete_backup(key),
            timeout=self.config.operation_timeout,
        )

    def notify_local_change(self) -> None:
        """Tell the runtime the host changed the dataset outside tmcloud."""
        self.engine.metadata.invalidate_local()

    async def save_settings(self, new_config: SyncConfig) -> None:
        """Validate and apply new settings as a queued operation.

        Switching from disabled to an active mode queues an initial
        sync; switching from backup to sync queues a mode-switch sync.

        Raises:
            ConfigIncomplete: Required settings for the new mode are missing.
        """
        if new_config.encryption_enabled and not new_config.encryption_key:
            raise ConfigIncomplete(
                "Encryption key is required when encryption is enabled"
            )
        if new_config.sync_mode is not SyncMode.DISABLED:
            new_config.check_complete()

        async def _apply() -> None:
            old = self.config
            merged = new_config.model_copy(
                update={
                    "last_sync_time": old.last_sync_time,
                    "last_sync_date": old.last_sync_date,
                }
            )
            self.ctx.config = merged
            await asyncio.to_thread(self.config_store.save, merged)

            if merged.storage != old.storage:
                self._connect_store()
                self.engine.metadata.invalidate_cloud()
            elif (merged.encryption_enabled, merged.encryption_key) != (
                old.encryption_enabled,
                old.encryption_key,
            ):
                self.engine.metadata.invalidate_cloud()
            self.queue.default_timeout = merged.operation_timeout

            if merged.sync_mode is SyncMode.DISABLED:
                self.scheduler.stop()
                return

            if self._serving:
                self.scheduler.start()

            if old.sync_mode is SyncMode.DISABLED:
                self.queue.clear_completed()
                self.queue.enqueue("force-initial-sync", self.run_scheduled)
            elif old.sync_mode is SyncMode.BACKUP and merged.sync_mode is SyncMode.SYNC:
                self.queue.enqueue("mode-switch-sync", self.run_scheduled)

        await self.queue.enqueue("settings-change", _apply)
        logger.info("Settings saved")

    def status(self) -> dict[str, Any]:
        """Serializable summary of config, queue and scheduler state."""
        config = self.config
        last_sync = (
            datetime.fromtimestamp(config.last_sync_time / 1000, tz=timezone.utc).isoformat()
            if config.last_sync_time
            else None
        )
        return {
            "sync_mode": config.sync_mode.value,
            "schedule": config.schedule_label,
            "encryption": config.encryption_enabled,
            "storage": str(config.storage.path) if config.storage.path else None,
            "configured": self.ctx.store is not None,
            "last_sync": last_sync,
            "last_sync_date": config.last_sync_date or None,
            "scheduler_running": self.scheduler.running,
            "running_operation": self.queue.running_name,
            "pending_operations": self.queue.pending_names,
            "recent_errors": self.queue.errors[-10:],
        }

    async def serve(self, stop: Optional[asyncio.Event] = None) -> None:
        """Run the scheduler until stop is set."""
        stop = stop or asyncio.Event()
        self._serving = True
        self.scheduler.start()
        try:
            await stop.wait()
        finally:
            self._serving = False
            self.scheduler.stop()
            await self.queue.shutdown()
