"""Logging helpers for reflex-grid-engine.

All components log through the ``reflex_grid_engine`` logger.  Messages
carry a bracketed component prefix such as ``[ColumnRegistry]`` so a
single stream stays readable when several grids share a process.
"""

import logging
import sys

from reflex_grid_engine.config import get_settings


LOGGER_NAME = "reflex_grid_engine"


class _LoggerHolder:
    """Holder for the package logger instance."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Return the package logger, attaching a stderr handler on first use."""
    if _LoggerHolder.instance is None:
        logger = logging.getLogger(LOGGER_NAME)
        logger.setLevel(get_settings().log_level)

        if not logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setLevel(logging.DEBUG)
            handler.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))
            logger.addHandler(handler)

        _LoggerHolder.instance = logger

    return _LoggerHolder.instance


def debug(msg: str) -> None:
    """Log a debug message."""
    get_logger().debug(msg)


def info(msg: str) -> None:
    """Log an info message."""
    get_logger().info(msg)


def warn(msg: str) -> None:
    """Log a warning message."""
    get_logger().warning(msg)


def error(msg: str) -> None:
    """Log an error message."""
    get_logger().error(msg)


def set_level(level: int | str) -> None:
    """Set the package log level.

    Args:
        level: A ``logging`` level constant or its name (``"DEBUG"``).
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Log every state transition."""
    set_level(logging.DEBUG)
