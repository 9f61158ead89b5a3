"""Logging configuration for Crypto-Analyst.

Every module gets a named stderr logger. The default level comes from
``app.log_level`` in settings.yaml; ``set_level`` re-levels all of them at
once (the CLI ``--verbose`` flag).
"""

import logging
import sys

from crypto_analyst.config import SETTINGS

LOG_FORMAT = "%(asctime)s | %(name)-20s | %(levelname)-7s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _default_level() -> str:
    app = SETTINGS.get("app") or {}
    return str(app.get("log_level", "INFO"))


def setup_logger(name: str = "crypto_analyst", level: str | None = None) -> logging.Logger:
    """Create and configure a named logger (idempotent per name)."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
        logger.propagate = False
    level = level or _default_level()
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def set_level(level: str) -> None:
    """Apply *level* to every logger already created by ``setup_logger``."""
    value = getattr(logging, level.upper(), logging.INFO)
    for logger in logging.Logger.manager.loggerDict.values():
        if isinstance(logger, logging.Logger) and logger.handlers:
            logger.setLevel(value)
