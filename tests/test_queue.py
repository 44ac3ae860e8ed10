"""
Tests for the operation queue -- dedup, ordering, isolation, timeouts.
"""

from __future__ import annotations

import asyncio

import pytest

from tmcloud.errors import OperationTimeout
from tmcloud.queue import OperationQueue


class TestOrdering:
    @pytest.mark.asyncio
    async def test_fifo_one_at_a_time(self):
        queue = OperationQueue()
        events: list[str] = []

        def op(name: str):
            async def _run():
                events.append(f"start-{name}")
                await asyncio.sleep(0.01)
                events.append(f"end-{name}")
                return name

            return _run

        futures = [queue.enqueue(n, op(n)) for n in ("a", "b", "c")]
        results = await asyncio.gather(*futures)

        assert results == ["a", "b", "c"]
        assert events == [
            "start-a", "end-a",
            "start-b", "end-b",
            "start-c", "end-c",
        ]
        assert queue.is_idle

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_queue(self):
        queue = OperationQueue()

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            return 42

        bad = queue.enqueue("bad", boom)
        good = queue.enqueue("good", ok)

        with pytest.raises(RuntimeError):
            await bad
        assert await good == 42
        assert "bad" in queue.failures
        assert queue.has_completed("good")
        assert "bad: boom" in queue.last_error


class TestDedup:
    @pytest.mark.asyncio
    async def test_same_name_runs_once(self):
        queue = OperationQueue()
        calls = 0
        release = asyncio.Event()

        async def work():
            nonlocal calls
            calls += 1
            await release.wait()
            return calls

        first = queue.enqueue("manual-sync", work)
        second = queue.enqueue("manual-sync", work)
        assert first is second

        await asyncio.sleep(0)
        third = queue.enqueue("manual-sync", work)
        assert third is first

        release.set()
        assert await first == 1
        assert calls == 1

    @pytest.mark.asyncio
    async def test_same_name_after_completion_runs_again(self):
        queue = OperationQueue()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1

        await queue.enqueue("daily-sync", work)
        await queue.enqueue("daily-sync", work)
        assert calls == 2

    @pytest.mark.asyncio
    async def test_once_skips_completed(self):
        queue = OperationQueue()
        calls = 0

        async def work():
            nonlocal calls
            calls += 1

        await queue.enqueue("force-initial-sync", work, once=True)
        await queue.enqueue("force-initial-sync", work, once=True)
        assert calls == 1

        queue.clear_completed()
        await queue.enqueue("force-initial-sync", work, once=True)
        assert calls == 2


class TestTimeout:
    @pytest.mark.asyncio
    async def test_timed_out_operation_keeps_running(self):
        queue = OperationQueue()
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.2)
            finished.set()

        async def next_op():
            return "next"

        slow_future = queue.enqueue("slow", slow, timeout=0.05)
        next_future = queue.enqueue("next", next_op)

        with pytest.raises(OperationTimeout):
            await slow_future
        assert await next_future == "next"
        assert not finished.is_set()

        await asyncio.wait_for(finished.wait(), timeout=1)
        assert "slow" in queue.failures

    @pytest.mark.asyncio
    async def test_actions_own_timeout_error_is_a_failure(self):
        queue = OperationQueue()

        async def raises_timeout():
            raise asyncio.TimeoutError()

        with pytest.raises(asyncio.TimeoutError):
            await queue.enqueue("t", raises_timeout, timeout=5)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_join_waits_for_follow_ups(self):
        queue = OperationQueue()
        ran: list[str] = []

        async def follow_up():
            ran.append("follow-up")

        async def first():
            ran.append("first")
            queue.enqueue("follow-up", follow_up)

        queue.enqueue("first", first)
        await queue.join()
        assert ran == ["first", "follow-up"]

    @pytest.mark.asyncio
    async def test_shutdown_cancels_pending(self):
        queue = OperationQueue()
        gate = asyncio.Event()

        async def blocker():
            await gate.wait()

        async def never():
            return None

        queue.enqueue("blocker", blocker)
        pending = queue.enqueue("never", never)
        await asyncio.sleep(0)
        assert queue.running_name == "blocker"
        assert queue.pending_names == ["never"]

        await queue.shutdown()
        assert pending.cancelled()
        gate.set()

    @pytest.mark.asyncio
    async def test_error_log_is_capped(self):
        queue = OperationQueue()

        async def boom():
            raise ValueError("x")

        for i in range(60):
            fut = queue.enqueue(f"op-{i}", boom)
            with pytest.raises(ValueError):
                await fut
        assert len(queue.errors) == 50
