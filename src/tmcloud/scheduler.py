"""
Daily sync scheduler.

A loop wakes at most every ``check_interval`` seconds and, once per
calendar day at or after the configured hour:minute, queues a
``daily-sync`` operation. The day stamp is persisted only after the
operation succeeds, so a failed run is retried on the next tick and a
restart later the same day does not run it again.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from .config import ConfigStore
from .context import SyncContext
from .models import SyncConfig, SyncMode
from .queue import OperationQueue

logger = logging.getLogger("tmcloud.scheduler")

DAILY_SYNC = "daily-sync"
CHECK_INTERVAL = 60.0


def is_daily_sync_time(config: SyncConfig, now: datetime) -> bool:
    """Check whether the daily sync is due.

    Args:
        config: Current config (schedule and last run date).
        now: Local wall-clock time.

    Returns:
        True if no run happened today and the configured time has passed.
    """
    if config.last_sync_date == now.date().isoformat():
        return False
    return (now.hour, now.minute) >= (config.sync_hour, config.sync_minute)


class DailyScheduler:
    """Queues the scheduled operation once per day.

    Args:
        ctx: Engine context; its config is read on every tick.
        queue: Queue that runs the operation.
        job: Coroutine function doing the mode's scheduled work.
        config_store: Where the day stamp is persisted.
        check_interval: Seconds between ticks.
        clock: Local wall-clock source.
    """

    def __init__(
        self,
        ctx: SyncContext,
        queue: OperationQueue,
        job: Callable[[], Awaitable[Any]],
        config_store: ConfigStore,
        check_interval: float = CHECK_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.ctx = ctx
        self.queue = queue
        self.job = job
        self.config_store = config_store
        self.check_interval = check_interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self, now: Optional[datetime] = None) -> bool:
        """Queue the daily operation if it is due.

        Returns:
            True if an operation was queued (or was already in flight).
        """
        config = self.ctx.config
        if config.sync_mode is SyncMode.DISABLED:
            return False

        now = now or self.clock()
        if not is_daily_sync_time(config, now):
            return False

        today = now.date().isoformat()
        logger.info("Running daily sync at %s", config.schedule_label)

        async def _daily() -> Any:
            result = await self.job()
            self.ctx.config.last_sync_date = today
            await asyncio.to_thread(self.config_store.update, last_sync_date=today)
            return result

        self.queue.enqueue(DAILY_SYNC, _daily, timeout=config.operation_timeout)
        return True

    def start(self) -> None:
        """Start (or restart) the loop; no-op when sync is disabled."""
        self.stop()
        if self.ctx.config.sync_mode is SyncMode.DISABLED:
            logger.info("Sync is disabled - scheduler not started")
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name="tmcloud-scheduler"
        )
        logger.info("Daily sync scheduler set for %s", self.ctx.config.schedule_label)

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info("Daily sync scheduler stopped")
        self._task = None

    async def _loop(self) -> None:
        while True:
            try:
                self.tick()
            except Exception as exc:
                logger.error("Error during scheduled daily sync: %s", exc)
            await asyncio.sleep(self.check_interval)
