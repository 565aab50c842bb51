"""Logging setup for DepthStream.

Modules log through ``logging.getLogger(__name__)``; this installs the
handlers described by a LoggingConfig once per process.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from depthstream.core.config import LoggingConfig

LOGGER_NAMESPACE = "depthstream"
DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s | %(message)s"

_HANDLER_TAG = "_depthstream_handler"


def configure_logging(
    config: Optional[LoggingConfig] = None,
    base_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        config: Logging section of the configuration (defaults if None)
        base_dir: Directory a relative log file path resolves against

    Returns:
        The configured package logger
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    # Replace handlers from a previous call
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)

    if config.console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        setattr(console, _HANDLER_TAG, True)
        logger.addHandler(console)

    if config.file:
        log_path = Path(config.file)
        if not log_path.is_absolute():
            log_path = (base_dir or Path.cwd()) / log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_path, maxBytes=5 * 1024 * 1024, backupCount=3)
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_TAG, True)
        logger.addHandler(file_handler)

    return logger
