"""Queue worker entry point."""

import asyncio
import logging
import signal
from typing import Optional

from task_protection.agent.client import EcsAgentClient, ProtectionClient
from task_protection.config.logging_config import configure_logging
from task_protection.config.settings import ConfigurationError, WorkerSettings, load_settings
from task_protection.reconciler.loop import ProtectionReconciler
from task_protection.worker.connection import QueueConnection
from task_protection.worker.context import WorkerContext
from task_protection.worker.queue import MessageHandler, QueueWorker

logger = logging.getLogger(__name__)


async def run_worker(
    settings: WorkerSettings,
    client: Optional[ProtectionClient] = None,
    connection: Optional[QueueConnection] = None,
    handler: Optional[MessageHandler] = None,
) -> None:
    """Run the worker until SIGTERM/SIGINT or persistent protection failure."""
    agent = client or EcsAgentClient(
        settings.ecs_agent_uri,
        timeout_seconds=settings.agent_timeout_seconds,
        retries=settings.agent_retries,
    )
    reconciler = ProtectionReconciler(
        agent,
        settings.reconciler_config(),
        rejection_alert_threshold=settings.rejection_alert_threshold,
    )
    context = WorkerContext(
        settings,
        reconciler,
        connection or QueueConnection(region_name=settings.aws_region),
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, context.request_stop, f"received {sig.name}")

    reconciler.start()
    try:
        await QueueWorker(context, handler).run()
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)
        reconciler.shutdown()
        await reconciler.wait_stopped()
        await context.connection.close()
        if client is None:
            await agent.aclose()


def main() -> None:
    try:
        settings = load_settings(WorkerSettings)
    except ConfigurationError as e:
        configure_logging()
        logger.critical("Invalid configuration: %s", e)
        raise SystemExit(1)

    configure_logging(settings.log_level)
    asyncio.run(run_worker(settings))


if __name__ == "__main__":
    main()
