"""
Logging configuration.

Configures the ``ridepool`` logger namespace once at application startup.
Modules obtain their own logger with ``logging.getLogger(__name__)``.
"""

import logging

from ridepool.app.core.config import settings

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = None) -> logging.Logger:
    """
    Attach a console handler to the ``ridepool`` logger.

    Safe to call more than once; the handler is only added the first time.
    """
    logger = logging.getLogger("ridepool")
    logger.setLevel((level or settings.log_level).upper())

    if not logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(console_handler)

    return logger
