"""Logging setup for the multifind command line and embedded runtimes.

Handlers are attached to the ``multifind`` package logger rather than the
root logger, so an application embedding the engine keeps its own logging
configuration. Calling :func:`configure_logging` again replaces only the
handlers it installed previously.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "multifind"

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_HANDLER_PREFIX = "multifind."
_PLAIN_FORMAT = "%(levelname)s: %(message)s"
_TRACE_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"


def validate_log_level(value: str | None, default: str = "INFO") -> str:
    """Validate and normalize a log level string.

    Raises
    ------
    ValueError
        If value is not a valid log level

    """
    if value is None:
        return default

    normalized = value.upper().strip()
    if normalized not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {value!r}. Must be one of: {', '.join(VALID_LOG_LEVELS)}")
    return normalized


def resolve_log_level(log_level: int | str) -> int:
    """Turn a level name or number into the numeric level ``logging`` uses."""
    if isinstance(log_level, int):
        return log_level
    return logging.getLevelName(validate_log_level(str(log_level)))


def configure_logging(
    log_level: int | str,
    log_file: Optional[str] = None,
    trace_mode: bool = False,
) -> logging.Logger:
    """Send multifind's log records to stderr and, optionally, a file.

    Parameters
    ----------
    log_level : int | str
        Numeric logging level or level name (e.g., "INFO")
    log_file : str, optional
        Path of a file that receives a copy of every record
    trace_mode : bool, default False
        Prefix records with a timestamp and the emitting module

    Returns
    -------
    logging.Logger
        The ``multifind`` package logger

    Raises
    ------
    ValueError
        If ``log_level`` is a string that names no level

    """
    level = resolve_log_level(log_level)
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        if (handler.get_name() or "").startswith(_HANDLER_PREFIX):
            package_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(
        _TRACE_FORMAT if trace_mode else _PLAIN_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S" if trace_mode else None,
    )
    package_logger.addHandler(_named_handler(logging.StreamHandler(sys.stderr), "console", level, formatter))

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        except OSError as exc:
            package_logger.warning("Could not create log file %s: %s", log_file, exc)
        else:
            package_logger.addHandler(_named_handler(file_handler, "file", level, formatter))
            package_logger.info("Logging to file: %s", log_file)

    return package_logger


def _named_handler(handler: logging.Handler, kind: str, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.set_name(_HANDLER_PREFIX + kind)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


__all__ = ["PACKAGE_LOGGER", "VALID_LOG_LEVELS", "configure_logging", "resolve_log_level", "validate_log_level"]
