"""Centralized logging configuration for the ``pocket_ledger`` package.

Public helpers:

- ``configure_logging(...)``: attach one ``StreamHandler`` to the package root
  logger (``"pocket_ledger"``). Entrypoints (the CLI) call it once at startup.
- ``get_logger(name)``: acquire a module logger; attaches a ``NullHandler`` to
  the package root while logging is unconfigured so library use stays silent.
- ``fmt_fields(**fields)``: render ``key=value`` pairs for the structured
  ``event key=value ...`` messages used throughout the package.

Library modules never attach handlers of their own.
"""

from __future__ import annotations

import logging
import os
import sys
from decimal import Decimal
from typing import IO, Any

_PKG_LOGGER_NAME = "pocket_ledger"
_LEVEL_ENV = "POCKET_LEDGER_LOG_LEVEL"
_DEFAULT_FMT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_handler: logging.Handler | None = None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        level = os.getenv(_LEVEL_ENV)
        if not level:
            return logging.INFO
    text = level.strip().upper()
    if text.isdigit():
        return int(text)
    numeric = logging.getLevelName(text)
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
    force: bool = False,
) -> None:
    """Configure the package root logger.

    Parameters
    ----------
    level:
        ``int`` or level name. ``None`` reads ``POCKET_LEDGER_LOG_LEVEL`` and
        falls back to ``INFO``.
    fmt:
        Optional format string for the handler.
    stream:
        Output stream (defaults to ``sys.stderr`` at call time).
    force:
        Replace a handler installed by an earlier call. Without it, repeated
        calls are no-ops.
    """

    global _handler
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is not None:
        if not force:
            return
        logger.removeHandler(_handler)
        _handler = None

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FMT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False
    _handler = handler


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name with a silent default until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


def fmt_fields(**fields: Any) -> str:
    """Return ``k=v`` pairs in call order; Decimals keep their exact text."""

    parts: list[str] = []
    for key, value in fields.items():
        if isinstance(value, Decimal):
            value = format(value, "f")
        elif isinstance(value, str) and (" " in value or not value):
            value = repr(value)
        parts.append(f"{key}={value}")
    return " ".join(parts)


__all__ = ["configure_logging", "get_logger", "fmt_fields"]
