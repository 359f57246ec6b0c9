"""
Logging configuration

Modules log through logging.getLogger(__name__); their records propagate
to the "opsdesk" package logger, which owns the only handler.
"""
import logging
import sys
from typing import Optional

from opsdesk.config import get_settings

settings = get_settings()

PACKAGE_LOGGER = "opsdesk"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stdout handler to the package logger and set its level"""
    logger = logging.getLogger(PACKAGE_LOGGER)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    logger.setLevel(level or ("DEBUG" if settings.DEBUG else settings.LOG_LEVEL))
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the configured package logger"""
    configure_logging()
    return logging.getLogger(name)
