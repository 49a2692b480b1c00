"""Tests for the connection-driven protection signal."""

import asyncio

import pytest

from task_protection.api.connections import ConnectionTracker
from task_protection.models.reconciler import ProtectionState, ReconcilerConfig
from task_protection.reconciler.loop import ProtectionReconciler


class FakeProtectionClient:
    def __init__(self):
        self.calls = []

    async def set_protection(self, enabled, duration_minutes=None):
        self.calls.append((enabled, duration_minutes))
        return {}


def _make_tracker(maintain_percentage: float = 0) -> ConnectionTracker:
    reconciler = ProtectionReconciler(
        FakeProtectionClient(),
        ReconcilerConfig(maintain_percentage=maintain_percentage),
    )
    return ConnectionTracker(reconciler)


class TestConnectionTracker:
    @pytest.mark.asyncio
    async def test_first_connection_acquires(self):
        tracker = _make_tracker()
        acquired = tracker.opened()
        assert acquired is not None
        assert tracker.opened() is None

        await asyncio.wait_for(acquired, timeout=1)
        assert tracker.reconciler.current == ProtectionState.PROTECTED

    @pytest.mark.asyncio
    async def test_last_disconnect_releases(self):
        tracker = _make_tracker()
        await asyncio.wait_for(tracker.opened(), timeout=1)
        tracker.opened()

        assert tracker.closed() is None
        released = tracker.closed()
        assert released is not None
        await asyncio.wait_for(released, timeout=1)

        assert tracker.count == 0
        assert tracker.reconciler.client.calls == [(True, 60), (False, None)]

    @pytest.mark.asyncio
    async def test_reconnect_inside_maintain_window_keeps_lease(self):
        tracker = _make_tracker(maintain_percentage=10)
        await asyncio.wait_for(tracker.opened(), timeout=1)
        tracker.closed()
        await asyncio.wait_for(tracker.opened(), timeout=1)

        assert tracker.reconciler.client.calls == [(True, 60)]

    def test_close_without_open_is_an_error(self):
        tracker = _make_tracker()
        with pytest.raises(RuntimeError):
            tracker.closed()
