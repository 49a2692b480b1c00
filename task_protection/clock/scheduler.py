"""
Clock and Scheduler — the time sources the reconciler is driven by.

The reconciler never reads wall-clock time or creates timers itself. It takes
a Clock for elapsed-time math and a Scheduler for its periodic tick, so tests
can swap in a ManualClock and call tick() directly.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Awaitable[object]]


class Clock(Protocol):
    def now(self) -> float:
        """Monotonic seconds. Only differences are meaningful."""
        ...


class SystemClock:
    """Production clock wrapping time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Virtual clock for deterministic tests."""

    def __init__(self, start: float = 0.0):
        self._now = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        """Move time forward and return the new reading."""
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, value: float) -> None:
        self._now = value


class Scheduler(Protocol):
    @property
    def running(self) -> bool:
        ...

    def start(self, callback: TickCallback) -> None:
        ...

    def stop(self) -> None:
        ...

    async def wait_stopped(self) -> None:
        ...


class IntervalScheduler:
    """
    Fires an async callback every interval on the running event loop.

    Waiting on a stop event with a timeout (rather than sleeping) lets stop()
    take effect immediately instead of after the current interval.
    """

    def __init__(self, interval_seconds: float):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.interval_seconds = interval_seconds
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, callback: TickCallback) -> None:
        """Start ticking. Must be called from inside a running event loop."""
        if self.running and not self._stop_event.is_set():
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run(callback, self._stop_event)
        )

    def stop(self) -> None:
        """Stop future ticks. A callback already in progress is allowed to finish."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def wait_stopped(self) -> None:
        if self._task is not None:
            await self._task

    async def _run(self, callback: TickCallback, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                try:
                    await callback()
                except Exception:
                    logger.exception("Scheduled tick failed")
