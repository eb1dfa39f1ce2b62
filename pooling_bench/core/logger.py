"""Logging for pooling_bench modules.

Every module takes its logger from get_logger(__name__). Loggers write to
stdout; the level comes from the argument, then the LOG_LEVEL environment
variable, then INFO. Batch and fold loops log per-unit detail at DEBUG.
"""

import logging
import os
import sys
from typing import Optional

PACKAGE_LOGGER_PREFIX = 'pooling_bench'
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get('LOG_LEVEL', 'INFO')).upper()
    value = logging.getLevelName(name)
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {name}")
    return value


def get_logger(
    name: str,
    level: Optional[str] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """Logger for one module, configured with a stdout handler on first use.

    Args:
        name: Module name (__name__)
        level: 'DEBUG', 'INFO', 'WARNING', 'ERROR' or 'CRITICAL'
        format_string: Record format (default DEFAULT_FORMAT)

    Returns:
        logging.Logger; repeated calls return the same logger without adding
        handlers
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level_value = _resolve_level(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level_value)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT, datefmt=DATE_FORMAT))

    logger.setLevel(level_value)
    logger.addHandler(handler)
    return logger


def set_log_level(level: str):
    """Change the level of every pooling_bench logger and its handlers.

    Example:
        set_log_level('DEBUG')  # per-batch fit messages
    """
    level_value = _resolve_level(level)

    for logger_name in list(logging.Logger.manager.loggerDict):
        if logger_name.startswith(PACKAGE_LOGGER_PREFIX):
            logger = logging.getLogger(logger_name)
            logger.setLevel(level_value)
            for handler in logger.handlers:
                handler.setLevel(level_value)
