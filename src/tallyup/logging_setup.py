"""Logging configuration for tallyup.

Library modules only call ``get_logger(__name__)``; handlers are attached once
by ``configure_logging`` from the CLI entry point.
"""

import logging
import os
import sys
from typing import IO, Optional, Union

_PKG_LOGGER_NAME = "tallyup"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_handler: Optional[logging.Handler] = None


def parse_level(level: Union[int, str, None], default: int = logging.WARNING) -> int:
    """Resolve a level name, number or numeric string to a logging level.

    When ``level`` is None the TALLYUP_LOG_LEVEL environment variable is used,
    then ``default``.
    """
    if isinstance(level, int):
        return level
    if level is None:
        level = os.environ.get("TALLYUP_LOG_LEVEL")
        if not level:
            return default
    level = level.strip().upper()
    if level.isdigit():
        return int(level)
    numeric = getattr(logging, level, None)
    if isinstance(numeric, int):
        return numeric
    return default


def configure_logging(
    level: Union[int, str, None] = None,
    fmt: Optional[str] = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach a single stream handler to the package logger.

    Calling it again replaces the handler, so the CLI can be invoked several
    times in one process (as the test runner does).

    Args:
        level: Level name or number; defaults to TALLYUP_LOG_LEVEL, then WARNING
        fmt: Optional format string
        stream: Output stream, stderr by default
    """
    global _handler

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for existing in list(logger.handlers):
        if isinstance(existing, logging.NullHandler) or existing is _handler:
            logger.removeHandler(existing)

    resolved = parse_level(level)
    _handler = logging.StreamHandler(stream)
    _handler.setLevel(resolved)
    _handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(_handler)
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return a logger, keeping the package silent until configured."""
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
