"""
Queue Worker — pulls one message at a time and holds task protection while
it works on it.

Per cycle:
  1. Desire protection and wait until the agent confirms it.
  2. Long-poll for a single message.
  3. Run the handler, delete the message, then drop the desire for protection.

The reconciler's maintain window absorbs the protect/unprotect flap between
back-to-back messages, so the agent is not called once per message.
"""

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Dict, Optional

from task_protection.models.reconciler import ProtectionEvent, ProtectionNotice, ProtectionState
from task_protection.worker.context import WorkerContext

logger = logging.getLogger(__name__)

Message = Dict[str, Any]
MessageHandler = Callable[[Message], Awaitable[None]]


def parse_work_duration_ms(body: Optional[str], default: float = 1000) -> float:
    """Read a message body as a work duration in milliseconds."""
    try:
        duration = float(body)
    except (TypeError, ValueError):
        logger.warning("Unparseable work duration %r, using %.0f ms", body, default)
        return default
    if not math.isfinite(duration) or duration < 0:
        logger.warning("Invalid work duration %r, using %.0f ms", body, default)
        return default
    return duration


class QueueWorker:
    def __init__(
        self,
        context: WorkerContext,
        handler: Optional[MessageHandler] = None,
        error_backoff_seconds: float = 1.0,
    ):
        self.context = context
        self.settings = context.settings
        self.reconciler = context.reconciler
        self.handler = handler or self.simulate_work
        self.error_backoff_seconds = error_backoff_seconds
        self._consecutive_rejections = 0

    async def run(self) -> None:
        """Process messages until a stop is requested."""
        unsubscribe = self.reconciler.subscribe(self._on_notice)
        try:
            while not self.context.stop_requested:
                await self.poll_once()
        finally:
            unsubscribe()
        logger.info("Exiting as requested")

    async def poll_once(self) -> bool:
        """Run one cycle. Returns True if a message was handled and deleted."""
        if not await self._wait_for_protection():
            return False

        message = await self.receive_message()
        if message is None:
            self.reconciler.set_desired(ProtectionState.UNPROTECTED)
            return False

        message_id = message.get("MessageId", "unknown")
        logger.info("%s - Received", message_id)
        try:
            await self.handler(message)
        except Exception:
            # Left undeleted, the message becomes visible again after its timeout
            logger.exception("%s - Handler failed", message_id)
            self.reconciler.set_desired(ProtectionState.UNPROTECTED)
            return False

        deleted = await self.delete_message(message["ReceiptHandle"])
        logger.info("%s - Done", message_id)
        self.reconciler.set_desired(ProtectionState.UNPROTECTED)
        return deleted

    async def receive_message(self) -> Optional[Message]:
        """Long-poll for one message. Failures are logged and yield None."""
        try:
            client = await self.context.connection.get_client()
            logger.debug("Polling for messages")
            response = await client.receive_message(
                QueueUrl=self.settings.copilot_queue_uri,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=self.settings.queue_wait_time_seconds,
                VisibilityTimeout=self.settings.queue_visibility_timeout_seconds,
            )
        except Exception as e:
            logger.error("Failed to receive messages because %s", e)
            await asyncio.sleep(self.error_backoff_seconds)
            return None

        messages = response.get("Messages") or []
        if not messages:
            return None
        return messages[0]

    async def delete_message(self, receipt_handle: str) -> bool:
        try:
            client = await self.context.connection.get_client()
            await client.delete_message(
                QueueUrl=self.settings.copilot_queue_uri,
                ReceiptHandle=receipt_handle,
            )
        except Exception as e:
            logger.error("Failed to delete handled message because %s", e)
            return False
        return True

    async def simulate_work(self, message: Message) -> None:
        """Default handler: the body is how long to 'work' in milliseconds."""
        duration_ms = parse_work_duration_ms(
            message.get("Body"), self.settings.default_work_duration_ms
        )
        logger.info(
            "%s - Working for %.0f milliseconds", message.get("MessageId", "unknown"), duration_ms
        )
        await asyncio.sleep(duration_ms / 1000)

    async def _wait_for_protection(self) -> bool:
        acquired = self.reconciler.acquire()
        stopped = asyncio.ensure_future(self.context.stop_event.wait())
        try:
            done, _ = await asyncio.wait(
                {acquired, stopped},
                timeout=self.settings.acquire_timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stopped.cancel()
        if acquired in done:
            return True

        acquired.cancel()
        if not self.context.stop_requested:
            logger.error(
                "ECS did not allow task to protect itself within %.0f seconds",
                self.settings.acquire_timeout_seconds,
            )
            self.context.request_stop("task protection unavailable")
        return False

    def _on_notice(self, notice: ProtectionNotice) -> None:
        if notice.event != ProtectionEvent.REJECTED:
            self._consecutive_rejections = 0
            return
        self._consecutive_rejections += 1
        if self._consecutive_rejections >= self.settings.max_consecutive_rejections:
            self.context.request_stop(
                f"task protection rejected {self._consecutive_rejections} times in a row"
            )
