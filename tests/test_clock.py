"""Tests for clocks and the interval scheduler."""

import asyncio

import pytest

from task_protection.clock.scheduler import IntervalScheduler, ManualClock, SystemClock


class TestClocks:
    def test_manual_clock_advances(self):
        clock = ManualClock(start=10)
        assert clock.now() == 10
        assert clock.advance(2.5) == 12.5
        clock.set(100)
        assert clock.now() == 100

    def test_manual_clock_cannot_go_backwards(self):
        with pytest.raises(ValueError):
            ManualClock().advance(-1)

    def test_system_clock_is_monotonic(self):
        clock = SystemClock()
        assert clock.now() <= clock.now()


class TestIntervalScheduler:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            IntervalScheduler(0)

    @pytest.mark.asyncio
    async def test_fires_until_stopped(self):
        fired = []

        async def callback():
            fired.append(1)

        scheduler = IntervalScheduler(0.01)
        scheduler.start(callback)
        assert scheduler.running
        await asyncio.sleep(0.1)
        scheduler.stop()
        await scheduler.wait_stopped()

        count = len(fired)
        assert count >= 2
        assert not scheduler.running
        await asyncio.sleep(0.05)
        assert len(fired) == count

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_loop(self):
        calls = []

        async def callback():
            calls.append(1)
            raise RuntimeError("tick failed")

        scheduler = IntervalScheduler(0.01)
        scheduler.start(callback)
        await asyncio.sleep(0.1)
        scheduler.stop()
        await scheduler.wait_stopped()
        assert len(calls) >= 2

    @pytest.mark.asyncio
    async def test_restart_right_after_stop_keeps_ticking(self):
        fired = []

        async def callback():
            fired.append(1)

        scheduler = IntervalScheduler(0.01)
        scheduler.start(callback)
        scheduler.stop()
        scheduler.start(callback)
        await asyncio.sleep(0.1)
        scheduler.stop()
        await scheduler.wait_stopped()
        assert len(fired) >= 2

    @pytest.mark.asyncio
    async def test_stop_before_first_tick(self):
        fired = []

        async def callback():
            fired.append(1)

        scheduler = IntervalScheduler(60)
        scheduler.start(callback)
        scheduler.stop()
        scheduler.stop()
        await asyncio.wait_for(scheduler.wait_stopped(), timeout=1)
        assert fired == []
