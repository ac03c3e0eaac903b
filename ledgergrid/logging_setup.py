"""Centralized logging configuration for the ``ledgergrid`` package.

Entry points (the API server and the desktop app) call
``configure_logging`` once at startup. Library modules only call
``get_logger("ledgergrid.<module>")`` and never attach handlers.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "ledgergrid"
_CONFIGURED = False


def _level_from_name(name: str) -> int | None:
    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = getattr(logging, name, None)
    return numeric if isinstance(numeric, int) else None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        parsed = _level_from_name(level)
        if parsed is not None:
            return parsed
    env_val = os.getenv("LEDGERGRID_LOG_LEVEL")
    if env_val:
        parsed = _level_from_name(env_val)
        if parsed is not None:
            return parsed
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach a single ``StreamHandler`` to the package logger, once.

    ``level`` falls back to ``LEDGERGRID_LOG_LEVEL`` and then ``INFO``.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setLevel(_parse_level(level))
    handler.setFormatter(logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s"))

    logger.setLevel(_parse_level(level))
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)
