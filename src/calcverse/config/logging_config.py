"""
Logging setup shared by the API, the UI and the scripts.

Library modules only create module loggers; entry points call
setup_logging() once.
"""
import logging
from typing import Optional

from .settings import get_settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_configured = False


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a console handler to the package logger. Safe to call twice."""
    global _configured
    logger = logging.getLogger('calcverse')
    logger.setLevel(level or get_settings().log_level)

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
        _configured = True
    return logger
