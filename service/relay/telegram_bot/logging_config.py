"""
Logging configuration for the relay bot.

Everything in the relay logs through ``relay_bot`` or one of its children
(``relay_bot.completion``), so one handler covers webhook, polling and the
completion client alike.
"""

import logging
import sys

from relay.config import get_settings

LOGGER_NAME = "relay_bot"
LOG_FORMAT = '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s'


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Attach a stdout handler to the ``relay_bot`` logger.

    Args:
        level: Handler level name; defaults to the LOG_LEVEL setting.
               Unknown names fall back to INFO.
    """
    level_name = (level or get_settings().log_level).upper()
    handler_level = logging.getLevelName(level_name)
    if not isinstance(handler_level, int):
        handler_level = logging.INFO

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(handler_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)

    # uvicorn configures the root logger; relay lines would print twice
    logger.propagate = False

    return logger


# Global logger instance
bot_logger = setup_logging()
