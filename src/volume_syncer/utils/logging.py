"""
Logging configuration for volume-syncer.

Console output (rich, plain text or JSON) and optional file output. Every
handler masks credentials before a record is formatted.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from volume_syncer.observability.structured_logging import (
    CorrelationIdFilter,
    HumanReadableFormatter,
    SecretMaskingFilter,
    StructuredFormatter,
)

ROOT_LOGGER = "volume_syncer"

LOG_FORMATS = ("text", "json", "rich")


class FileFormatter(logging.Formatter):
    """Formatter for file logs - clean and parseable."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s [%(correlation_id)s]: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


# Map string level names to logging constants
LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _parse_level(level: str | int) -> int:
    """
    Parse logging level from string or int.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int

    Returns:
        Logging level constant
    """
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level_upper = level.upper()
        if level_upper in LEVEL_MAP:
            return LEVEL_MAP[level_upper]
    # Default to INFO if invalid
    return logging.INFO


def _install_filters(handler: logging.Handler) -> logging.Handler:
    handler.addFilter(SecretMaskingFilter())
    handler.addFilter(CorrelationIdFilter())
    return handler


def setup_logging(
    level: str | int = logging.INFO,
    fmt: str = "text",
    log_file: str | Path | None = None,
    file_mode: str = "a",
    console: Console | None = None,
) -> logging.Logger:
    """
    Setup logging configuration for volume-syncer.

    Args:
        level: Logging level as string (DEBUG, INFO, etc.) or int (default: INFO)
        fmt: Console format - "text", "json" or "rich" (default: "text")
        log_file: Optional file path to write logs to (default: None, console only)
        file_mode: File mode for file handler - 'a' for append, 'w' for overwrite (default: 'a')
        console: Optional Rich Console instance for the rich format

    Returns:
        Logger instance
    """
    if fmt not in LOG_FORMATS:
        raise ValueError(f"unknown log format {fmt!r}, expected one of {', '.join(LOG_FORMATS)}")

    logger = logging.getLogger(ROOT_LOGGER)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    level_int = _parse_level(level)
    logger.setLevel(level_int)

    if fmt == "rich":
        console_handler: logging.Handler = RichHandler(
            console=console or Console(stderr=True),
            level=level_int,
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=False,
            log_time_format="[%X]",
        )
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level_int)
        console_handler.setFormatter(StructuredFormatter() if fmt == "json" else HumanReadableFormatter())
    logger.addHandler(_install_filters(console_handler))

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode=file_mode)
        # File captures everything the logger lets through
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter() if fmt == "json" else FileFormatter())
        logger.addHandler(_install_filters(file_handler))

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (default: "volume_syncer")

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    # Child loggers propagate to the volume_syncer handlers (and to pytest's caplog)
    logger.propagate = True
    return logger
