"""
Operation queue -- the single lane every mutation goes through.

Operations are named. A name that is already pending or running is not
queued twice; the caller gets the future of the existing entry instead.
One drain task runs operations strictly in FIFO order, one at a time.

Timeouts bound how long the queue waits, not how long the work runs:
a timed-out operation is reported as failed and the queue moves on,
but its task is left to finish (or fail) on its own.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from .errors import OperationTimeout

logger = logging.getLogger("tmcloud.queue")

DEFAULT_TIMEOUT = 300.0
MAX_ERRORS = 50

Action = Callable[[], Awaitable[Any]]


def _consume(fut: asyncio.Future) -> None:
    # Marks the exception as retrieved for fire-and-forget callers.
    if not fut.cancelled():
        fut.exception()


@dataclass
class Operation:
    """A queued unit of work."""

    name: str
    action: Action
    timeout: float
    future: asyncio.Future
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class OperationQueue:
    """Serializes named async operations onto one execution lane.

    Args:
        default_timeout: Seconds an operation may run before the queue
            gives up waiting for it.
    """

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT):
        self.default_timeout = default_timeout
        self.completed: set[str] = set()
        self.failures: dict[str, BaseException] = {}
        self.errors: list[str] = []
        self._pending: deque[Operation] = deque()
        self._running: Optional[Operation] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._stragglers: set[asyncio.Task] = set()

    @property
    def pending_names(self) -> list[str]:
        return [op.name for op in self._pending]

    @property
    def running_name(self) -> Optional[str]:
        return self._running.name if self._running else None

    @property
    def is_idle(self) -> bool:
        return self._running is None and not self._pending

    @property
    def last_error(self) -> Optional[str]:
        return self.errors[-1] if self.errors else None

    def has_completed(self, name: str) -> bool:
        return name in self.completed

    def clear_completed(self) -> None:
        self.completed.clear()

    def enqueue(
        self,
        name: str,
        action: Action,
        timeout: Optional[float] = None,
        once: bool = False,
    ) -> asyncio.Future:
        """Queue an operation unless one with the same name is in flight.

        Args:
            name: Dedup key.
            action: Zero-argument coroutine function doing the work.
            timeout: Seconds to wait for it. Defaults to default_timeout.
            once: Skip if an operation with this name already succeeded.

        Returns:
            Future resolving to the action's result, or raising its error.
        """
        loop = asyncio.get_running_loop()

        if once and name in self.completed:
            logger.debug("Skipping %s: already completed", name)
            done = loop.create_future()
            done.set_result(None)
            return done

        for op in self._in_flight():
            if op.name == name:
                logger.debug("Skipping %s: already queued", name)
                return op.future

        future = loop.create_future()
        future.add_done_callback(_consume)
        self._pending.append(
            Operation(
                name=name,
                action=action,
                timeout=timeout if timeout is not None else self.default_timeout,
                future=future,
            )
        )
        logger.info("Queued operation %s (%d pending)", name, len(self._pending))

        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self._drain(), name="tmcloud-queue")
        return future

    async def join(self) -> None:
        """Wait until every queued operation has been processed."""
        while self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    async def shutdown(self) -> None:
        """Drop pending work and stop the drain task."""
        while self._pending:
            self._pending.popleft().future.cancel()
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass

    def _in_flight(self) -> list[Operation]:
        ops = list(self._pending)
        if self._running is not None:
            ops.insert(0, self._running)
        return ops

    async def _drain(self) -> None:
        while self._pending:
            op = self._pending.popleft()
            self._running = op
            try:
                await self._run(op)
            finally:
                self._running = None

    async def _run(self, op: Operation) -> None:
        logger.info("Starting operation %s", op.name)
        try:
            task = asyncio.ensure_future(op.action())
        except Exception as exc:
            self._fail(op, exc)
            return

        try:
            result = await asyncio.wait_for(asyncio.shield(task), timeout=op.timeout)
        except asyncio.TimeoutError as exc:
            if task.done():
                self._fail(op, exc)
                return
            self._stragglers.add(task)
            task.add_done_callback(self._straggler_done(op.name))
            self._fail(
                op,
                OperationTimeout(f"Operation {op.name} timed out after {op.timeout}s"),
            )
        except asyncio.CancelledError:
            if not op.future.done():
                op.future.cancel()
            raise
        except Exception as exc:
            self._fail(op, exc)
        else:
            self.completed.add(op.name)
            self.failures.pop(op.name, None)
            if not op.future.done():
                op.future.set_result(result)
            logger.info("Completed operation %s", op.name)

    def _fail(self, op: Operation, exc: BaseException) -> None:
        logger.error("Operation %s failed: %s", op.name, exc)
        self.failures[op.name] = exc
        ts = datetime.now(timezone.utc).isoformat()
        self.errors.append(f"[{ts}] {op.name}: {exc}")
        if len(self.errors) > MAX_ERRORS:
            self.errors = self.errors[-MAX_ERRORS:]
        if not op.future.done():
            op.future.set_exception(exc)

    def _straggler_done(self, name: str) -> Callable[[asyncio.Task], None]:
        def _done(task: asyncio.Task) -> None:
            self._stragglers.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.warning("Timed-out operation %s later failed: %s", name, exc)
            else:
                logger.info("Timed-out operation %s finished late", name)

        return _done
