"""Centralized logging configuration for the application."""

import logging
import sys
from typing import IO, Optional


def setup_logging(level: str = "INFO", stream: Optional[IO[str]] = None) -> logging.Logger:
    """Configure and return the application logger.

    Sets up a consistent log format across the entire application
    with timestamps, log level, module name, and the message.

    Args:
        level: The log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Where log lines go; stdout unless the caller (the CLI)
            needs stdout for its own output.

    Returns:
        The configured root application logger.
    """
    log_format = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logger = logging.getLogger("credit_merge")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent duplicate handlers if called multiple times
    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
        logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a child logger under the credit_merge namespace.

    Usage:
        from credit_merge.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Merging small credit records")

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A child logger with the given name.
    """
    if name == "credit_merge" or name.startswith("credit_merge."):
        return logging.getLogger(name)
    return logging.getLogger(f"credit_merge.{name}")
