"""
Tests for the timer and frame scheduler.
"""

import asyncio
import logging

import pytest

from telepace.scheduler import AsyncioScheduler, ManualScheduler, TimerSlot


class TestManualScheduler:
    """Tests for the deterministic test clock."""

    def test_runs_in_due_order(self, scheduler: ManualScheduler) -> None:
        calls: list[str] = []
        scheduler.call_later(30, lambda: calls.append("late"))
        scheduler.call_later(10, lambda: calls.append("early"))
        scheduler.call_later(10, lambda: calls.append("early-second"))

        scheduler.advance(29)
        assert calls == ["early", "early-second"]
        scheduler.advance(1)
        assert calls == ["early", "early-second", "late"]
        assert scheduler.now() == 30

    def test_clock_reads_due_time_inside_callback(self, scheduler: ManualScheduler) -> None:
        seen: list[float] = []
        scheduler.call_later(40, lambda: seen.append(scheduler.now()))
        scheduler.advance(100)
        assert seen == [40]
        assert scheduler.now() == 100

    def test_callbacks_scheduled_during_advance(self, scheduler: ManualScheduler) -> None:
        calls: list[float] = []

        def first() -> None:
            calls.append(scheduler.now())
            scheduler.call_later(20, lambda: calls.append(scheduler.now()))

        scheduler.call_later(10, first)
        scheduler.advance(50)
        assert calls == [10, 30]

    def test_cancel(self, scheduler: ManualScheduler) -> None:
        calls: list[int] = []
        handle = scheduler.call_later(10, lambda: calls.append(1))
        handle.cancel()
        handle.cancel()

        assert scheduler.pending == 0
        scheduler.advance(20)
        assert calls == []

    def test_request_frame_passes_timestamp(self, scheduler: ManualScheduler) -> None:
        stamps: list[float] = []
        scheduler.request_frame(stamps.append)
        scheduler.advance(16)
        assert stamps == [16]

    def test_run_until_idle(self, scheduler: ManualScheduler) -> None:
        count: list[int] = []

        def tick() -> None:
            count.append(1)
            if len(count) < 5:
                scheduler.call_later(100, tick)

        scheduler.call_later(100, tick)
        scheduler.run_until_idle()
        assert len(count) == 5
        assert scheduler.now() == 500

    def test_run_until_idle_limit(self, scheduler: ManualScheduler) -> None:
        def forever() -> None:
            scheduler.call_later(10, forever)

        scheduler.call_later(10, forever)
        scheduler.run_until_idle(limit_ms=1000)
        assert scheduler.now() == 1000
        assert scheduler.pending == 1

    def test_failing_callback_is_logged(self, scheduler: ManualScheduler,
                                        caplog: pytest.LogCaptureFixture) -> None:
        calls: list[int] = []

        def broken() -> None:
            raise RuntimeError("boom")

        scheduler.call_later(5, broken)
        scheduler.call_later(6, lambda: calls.append(1))
        with caplog.at_level(logging.ERROR, logger="telepace.scheduler"):
            scheduler.advance(10)

        assert calls == [1]
        assert "boom" in caplog.text


class TestTimerSlot:
    """Tests for single-occupancy timers."""

    def test_reschedule_replaces(self, scheduler: ManualScheduler) -> None:
        calls: list[str] = []
        slot = TimerSlot(scheduler, "test")
        slot.schedule(10, lambda: calls.append("first"))
        slot.schedule(20, lambda: calls.append("second"))

        assert scheduler.pending == 1
        scheduler.advance(30)
        assert calls == ["second"]

    def test_active_clears_after_firing(self, scheduler: ManualScheduler) -> None:
        slot = TimerSlot(scheduler)
        slot.schedule(10, lambda: None)
        assert slot.active
        scheduler.advance(10)
        assert not slot.active

    def test_callback_can_reschedule_itself(self, scheduler: ManualScheduler) -> None:
        slot = TimerSlot(scheduler)
        stamps: list[float] = []

        def frame(timestamp: float) -> None:
            stamps.append(timestamp)
            if len(stamps) < 3:
                slot.request_frame(frame)

        slot.request_frame(frame)
        scheduler.run_until_idle()
        assert stamps == [16, 32, 48]
        assert not slot.active

    def test_cancel(self, scheduler: ManualScheduler) -> None:
        slot = TimerSlot(scheduler)
        slot.schedule(10, lambda: None)
        slot.cancel()
        assert not slot.active
        assert scheduler.pending == 0


class TestAsyncioScheduler:
    """Tests for the event-loop backed scheduler."""

    @pytest.mark.asyncio
    async def test_call_later(self) -> None:
        scheduler = AsyncioScheduler(asyncio.get_running_loop())
        fired = asyncio.Event()
        scheduler.call_later(10, fired.set)
        await asyncio.wait_for(fired.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_cancel(self) -> None:
        scheduler = AsyncioScheduler(asyncio.get_running_loop())
        calls: list[int] = []
        handle = scheduler.call_later(10, lambda: calls.append(1))
        handle.cancel()
        await asyncio.sleep(0.05)
        assert calls == []

    @pytest.mark.asyncio
    async def test_now_is_milliseconds(self) -> None:
        loop = asyncio.get_running_loop()
        scheduler = AsyncioScheduler(loop)
        assert scheduler.now() == pytest.approx(loop.time() * 1000.0, abs=50.0)
