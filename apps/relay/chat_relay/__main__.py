"""Run the chat relay with uvicorn."""
from __future__ import annotations

import logging

import uvicorn

from .core.config import settings
from .core.logging import configure_logging

logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging(settings.log_level)
    logger.info("Starting chat relay on %s:%s", settings.host, settings.port)
    uvicorn.run("chat_relay.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
