"""Live connection counter that drives the desire for protection."""

import asyncio
import logging
from typing import Optional

from task_protection.reconciler.loop import ProtectionReconciler

logger = logging.getLogger(__name__)


class ConnectionTracker:
    """
    Protect the task while at least one client is connected.

    The first connection acquires protection and the last disconnect releases
    it. Returned futures may be awaited, but the socket handlers don't block
    on them.
    """

    def __init__(self, reconciler: ProtectionReconciler):
        self.reconciler = reconciler
        self.count = 0

    def opened(self) -> Optional[asyncio.Future]:
        self.count += 1
        logger.info("New client connection opened. There are %d connections", self.count)
        if self.count == 1:
            logger.info("Protecting this task because there are %d clients connected", self.count)
            return self.reconciler.acquire()
        return None

    def closed(self) -> Optional[asyncio.Future]:
        if self.count == 0:
            raise RuntimeError("closed() called with no open connections")
        self.count -= 1
        logger.info("Client connection closed. There are %d connections", self.count)
        if self.count == 0:
            logger.info("Clearing task protection because there are no connected clients")
            return self.reconciler.release()
        return None
