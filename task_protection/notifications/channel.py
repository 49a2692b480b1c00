"""
Notification Channel — fan-out delivery of protection notices.

Behavioral Contract:
- Every subscriber sees every notice emitted after it subscribed, in emit order.
- A failing listener is logged and never prevents delivery to the others.
- Waiters are one-shot: they resolve on the first matching notice and are removed.
"""

import asyncio
import logging
from typing import Callable, List, Tuple

from task_protection.models.reconciler import ProtectionNotice

logger = logging.getLogger(__name__)

Listener = Callable[[ProtectionNotice], None]
NoticePredicate = Callable[[ProtectionNotice], bool]


class NotificationChannel:
    def __init__(self):
        self._listeners: List[Listener] = []
        self._waiters: List[Tuple[NoticePredicate, asyncio.Future]] = []

    @property
    def pending_waiters(self) -> int:
        return sum(1 for _, future in self._waiters if not future.done())

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def wait_for(self, predicate: NoticePredicate) -> asyncio.Future:
        """Future resolving with the first future notice matching predicate."""
        future = asyncio.get_running_loop().create_future()
        self._waiters.append((predicate, future))
        return future

    def emit(self, notice: ProtectionNotice) -> None:
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Protection listener %r failed", listener)

        remaining = []
        for predicate, future in self._waiters:
            if future.done():
                # Cancelled by the caller (e.g. a timeout around the await)
                continue
            if predicate(notice):
                future.set_result(notice)
            else:
                remaining.append((predicate, future))
        self._waiters = remaining
