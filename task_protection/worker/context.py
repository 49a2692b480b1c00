"""Shared state for one worker process, passed to each component explicitly."""

import asyncio
import logging
from typing import Optional

from task_protection.config.settings import WorkerSettings
from task_protection.reconciler.loop import ProtectionReconciler
from task_protection.worker.connection import QueueConnection

logger = logging.getLogger(__name__)


class WorkerContext:
    """
    Settings, collaborators, and the "stop after the current unit of work"
    flag for a worker process.
    """

    def __init__(
        self,
        settings: WorkerSettings,
        reconciler: ProtectionReconciler,
        connection: QueueConnection,
        stop_event: Optional[asyncio.Event] = None,
    ):
        self.settings = settings
        self.reconciler = reconciler
        self.connection = connection
        self.stop_event = stop_event or asyncio.Event()

    @property
    def stop_requested(self) -> bool:
        return self.stop_event.is_set()

    def request_stop(self, reason: str = "requested") -> None:
        if not self.stop_event.is_set():
            logger.info("Stop requested (%s), will quit when all work is done", reason)
        self.stop_event.set()
