"""
Protection Reconciler — keeps this process's task protection lease in the
state the workload asks for.

Each tick compares desired vs. current state and evaluates, in order:
  1. unprotected / unprotected          -> no-op, confirm unprotected
  2. protected / protected, lease young -> no-op, confirm protected
  3. protected / unprotected, lease inside the maintain window
                                        -> no-op, keep protection (hysteresis)
  4. anything else                      -> call the protection API for desired

Behavioral Contract:
- current only changes after a successful API call.
- desired is last-write-wins; only its value at tick time is acted on.
- Ticks are single-flight: at most one API call is in flight at a time.
- Every tick emits exactly one notice and tick() never raises.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Set

from task_protection.agent.client import ProtectionClient
from task_protection.clock.scheduler import Clock, IntervalScheduler, Scheduler, SystemClock
from task_protection.models.reconciler import (
    ProtectionEvent,
    ProtectionNotice,
    ProtectionState,
    ReconcilerConfig,
    ReconcilerState,
)
from task_protection.notifications.channel import Listener, NotificationChannel

logger = logging.getLogger(__name__)


class ProtectionReconciler:
    """
    Reconciles desired protection against the orchestrator's protection API.

    acquire()/release() write desired synchronously and return a future that
    resolves with the first notice, from a tick that has seen this request,
    reporting the requested state as current. After shutdown() those futures
    may never resolve; callers should wrap them in their own timeout.
    """

    def __init__(
        self,
        client: ProtectionClient,
        config: Optional[ReconcilerConfig] = None,
        clock: Optional[Clock] = None,
        scheduler: Optional[Scheduler] = None,
        channel: Optional[NotificationChannel] = None,
        rejection_alert_threshold: int = 3,
    ):
        self.client = client
        self.config = config or ReconcilerConfig()
        self.clock = clock or SystemClock()
        self.scheduler = scheduler or IntervalScheduler(self.config.tick_interval_seconds)
        self.channel = channel or NotificationChannel()
        self.rejection_alert_threshold = rejection_alert_threshold

        self._state = ReconcilerState(last_transition_at=self.clock.now())
        self._lock = asyncio.Lock()
        self._pending_ticks: Set[asyncio.Task] = set()

    @property
    def status(self) -> str:
        return "running" if self.scheduler.running else "stopped"

    @property
    def state(self) -> ReconcilerState:
        """A snapshot; mutating it has no effect on the reconciler."""
        return self._state.model_copy()

    @property
    def desired(self) -> ProtectionState:
        return self._state.desired

    @property
    def current(self) -> ProtectionState:
        return self._state.current

    def start(self) -> None:
        """Begin periodic reconciliation. Must be called inside a running loop."""
        self.scheduler.start(self.tick)
        logger.info(
            "Protection reconciler started (lease %.1f min, tick %d ms)",
            self.config.desired_duration_minutes,
            self.config.tick_interval_ms,
        )

    def shutdown(self) -> None:
        """Stop periodic ticks. Protection is left as-is and expires on its own."""
        self.scheduler.stop()
        logger.info("Protection reconciler stopped")

    async def wait_stopped(self) -> None:
        """Wait for the scheduler loop and any on-demand ticks to finish."""
        await self.scheduler.wait_stopped()
        if self._pending_ticks:
            await asyncio.gather(*list(self._pending_ticks), return_exceptions=True)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.channel.subscribe(listener)

    def set_desired(self, state: ProtectionState) -> int:
        """
        Record the desired state and schedule an immediate tick.
        Returns the generation token for this request.
        """
        self._state.desired = state
        self._state.generation += 1
        self._schedule_tick()
        return self._state.generation

    def acquire(self) -> asyncio.Future:
        """Desire protection; the future resolves once protection is confirmed."""
        return self._request(ProtectionState.PROTECTED)

    def release(self) -> asyncio.Future:
        """Desire no protection; the future resolves once it is released."""
        return self._request(ProtectionState.UNPROTECTED)

    def _request(self, target: ProtectionState) -> asyncio.Future:
        token = self._state.generation + 1
        # Register before the tick is scheduled so its notice can't be missed
        waiter = self.channel.wait_for(
            lambda notice: notice.generation >= token and notice.current == target
        )
        self.set_desired(target)
        return waiter

    def _schedule_tick(self) -> None:
        task = asyncio.get_running_loop().create_task(self.tick())
        self._pending_ticks.add(task)
        task.add_done_callback(self._pending_ticks.discard)

    async def tick(self) -> ProtectionNotice:
        """Run one reconciliation step. Serialized; never raises."""
        async with self._lock:
            notice = await self._reconcile()
        self.channel.emit(notice)
        return notice

    async def _reconcile(self) -> ProtectionNotice:
        state = self._state
        desired = state.desired
        generation = state.generation

        if state.current == ProtectionState.UNPROTECTED and desired == ProtectionState.UNPROTECTED:
            return self._notice(ProtectionEvent.UNPROTECTED, generation)

        elapsed = self.clock.now() - state.last_transition_at

        if (
            state.current == ProtectionState.PROTECTED
            and desired == ProtectionState.PROTECTED
            and elapsed < self.config.refresh_after_seconds
        ):
            return self._notice(ProtectionEvent.PROTECTED, generation)

        if (
            state.current == ProtectionState.PROTECTED
            and desired == ProtectionState.UNPROTECTED
            and elapsed < self.config.maintain_for_seconds
        ):
            return self._notice(ProtectionEvent.PROTECTED, generation)

        try:
            if desired == ProtectionState.PROTECTED:
                logger.info(
                    "Requesting task protection for %.1f minutes",
                    self.config.desired_duration_minutes,
                )
                await self.client.set_protection(True, self.config.desired_duration_minutes)
            else:
                logger.info("Requesting release of task protection")
                await self.client.set_protection(False)
        except Exception as e:
            state.consecutive_rejections += 1
            self._log_rejection(e)
            return self._notice(ProtectionEvent.REJECTED, generation, reason=str(e) or repr(e))

        state.current = desired
        state.last_transition_at = self.clock.now()
        state.consecutive_rejections = 0
        logger.info("Task is now %s", desired.value)
        return self._notice(ProtectionEvent(desired.value), generation)

    def _log_rejection(self, error: Exception) -> None:
        count = self._state.consecutive_rejections
        if count >= self.rejection_alert_threshold:
            logger.error(
                "Orchestrator rejected task protection change %d times in a row: %s",
                count,
                error,
            )
        else:
            logger.warning("Orchestrator rejected task protection change (%d): %s", count, error)

    def _notice(
        self,
        event: ProtectionEvent,
        generation: int,
        reason: Optional[str] = None,
    ) -> ProtectionNotice:
        return ProtectionNotice(
            event=event,
            current=self._state.current,
            desired=self._state.desired,
            generation=generation,
            reason=reason,
            emitted_at=datetime.utcnow(),
        )
