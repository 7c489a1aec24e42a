"""Logging configuration for pairbridge."""

import logging
from pathlib import Path

from pairbridge.config import Config

LOGGER_NAME = "pairbridge"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# aiohttp logs every observer request at INFO
QUIET_LOGGERS = ("aiohttp.access",)

_logger: logging.Logger | None = None


def _handlers(config: Config) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.log_file:
        log_path = Path(config.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    handlers.append(logging.StreamHandler())
    return handlers


def setup_logging(config: Config) -> logging.Logger:
    """Configure the pairbridge logger once per process.

    Args:
        config: Configuration with log_level and optional log_file.

    Returns:
        The "pairbridge" logger. Later calls return it unchanged.
    """
    global _logger

    if _logger is not None:
        return _logger

    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _handlers(config):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False

    if level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _logger = logger
    return logger


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    global _logger
    if _logger is None:
        return
    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()
    _logger.propagate = True
    _logger.setLevel(logging.NOTSET)
    _logger = None
