"""Websocket server entry point."""

import logging

import uvicorn

from task_protection.api.app import create_app
from task_protection.config.logging_config import configure_logging
from task_protection.config.settings import ConfigurationError, ServerSettings, load_settings

logger = logging.getLogger(__name__)


def main() -> None:
    try:
        settings = load_settings(ServerSettings)
    except ConfigurationError as e:
        configure_logging()
        logger.critical("Invalid configuration: %s", e)
        raise SystemExit(1)

    configure_logging(settings.log_level)
    # uvicorn handles SIGTERM and runs the lifespan shutdown
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
