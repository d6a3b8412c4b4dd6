"""Tests for the deadline/cancellation primitive."""

import asyncio

import pytest

from planvet.cancellation import run_with_deadline
from planvet.errors import DeadlineExceeded


class Resource:
    """Records stop requests; optionally ignores the graceful one."""

    def __init__(self, stubborn=False):
        self.stubborn = stubborn
        self.events = []
        self.closed = asyncio.Event()

    def graceful(self):
        self.events.append("graceful")
        if not self.stubborn:
            self.closed.set()

    def forceful(self):
        self.events.append("forceful")
        self.closed.set()

    async def wait_closed(self):
        await self.closed.wait()


class TestRunWithDeadline:
    """Tests for run_with_deadline."""

    @pytest.mark.asyncio
    async def test_returns_result_within_deadline(self):
        async def work():
            return 42

        assert await run_with_deadline(work(), 1.0) == 42

    @pytest.mark.asyncio
    async def test_propagates_work_exception(self):
        async def work():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await run_with_deadline(work(), 1.0)

    @pytest.mark.asyncio
    async def test_graceful_stop(self):
        resource = Resource()

        with pytest.raises(DeadlineExceeded) as exc_info:
            await run_with_deadline(
                asyncio.sleep(10),
                0.05,
                graceful=resource.graceful,
                forceful=resource.forceful,
                wait_closed=resource.wait_closed,
                grace=1.0,
            )

        assert exc_info.value.escalated is False
        assert exc_info.value.timeout == 0.05
        assert resource.events == ["graceful"]

    @pytest.mark.asyncio
    async def test_escalates_after_grace(self):
        resource = Resource(stubborn=True)

        with pytest.raises(DeadlineExceeded) as exc_info:
            await run_with_deadline(
                asyncio.sleep(10),
                0.05,
                graceful=resource.graceful,
                forceful=resource.forceful,
                wait_closed=resource.wait_closed,
                grace=0.05,
            )

        assert exc_info.value.escalated is True
        assert resource.events == ["graceful", "forceful"]

    @pytest.mark.asyncio
    async def test_work_is_cancelled(self):
        cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(DeadlineExceeded):
            await run_with_deadline(work(), 0.05)

        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_caller_cancellation_stops_resource(self):
        """Cancelling the caller runs the same teardown, then re-raises."""
        resource = Resource()

        outer = asyncio.ensure_future(run_with_deadline(
            asyncio.sleep(10),
            10.0,
            graceful=resource.graceful,
            wait_closed=resource.wait_closed,
        ))
        await asyncio.sleep(0.05)
        outer.cancel()

        with pytest.raises(asyncio.CancelledError):
            await outer
        assert resource.events == ["graceful"]
