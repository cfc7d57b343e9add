"""Logging setup for the persistence library and the sync server.

The package logs storage fallbacks, self-healed records and sync outcomes
under ``quiz_persistence.*``. HTTP client and server access logs are noisy
at INFO during batched syncing, so they get their own threshold.
"""

from __future__ import annotations

import logging
from logging import Logger

PACKAGE_LOGGER = "quiz_persistence"
TRANSPORT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "uvicorn.access")


def configure_logging(level: int | str = logging.INFO, transport_level: int | str = logging.WARNING) -> Logger:
    """Configure basic logging and return the package logger.

    ``level`` applies to this package; ``transport_level`` to the HTTP
    client and the uvicorn access log.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    return logger
