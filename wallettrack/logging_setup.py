"""Centralized logging configuration for the ``wallettrack`` package.

``configure_logging(...)`` wires structlog onto the standard library logging
tree once, at process start-up (the HTTP app calls it on import). Library
modules only call ``get_logger(__name__)`` and never configure handlers or
structlog itself; their loggers wrap a stdlib logger under ``"wallettrack"``,
which carries a ``NullHandler`` until an entrypoint configures it, so nothing
is printed from library contexts such as tests and a host application's own
structlog configuration is left alone.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

import structlog

_PKG_LOGGER_NAME = "wallettrack"
_CONFIGURED = False

_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
    structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
]


def _parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv("WALLETTRACK_LOG_LEVEL")
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        # Numeric strings or standard level names (INFO/DEBUG/etc.).
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure structlog and attach one formatted handler to the package logger.

    ``fmt`` selects the renderer: ``"json"`` (default, or the
    ``WALLETTRACK_LOG_FORMAT`` environment variable) or ``"console"``.
    Calling this more than once is a no-op.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    structlog.configure(
        processors=list(_PROCESSORS),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)

    renderer_name = (fmt or os.getenv("WALLETTRACK_LOG_FORMAT") or "json").strip().lower()
    if renderer_name == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    handler = logging.StreamHandler(stream)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer))
    logger.addHandler(handler)
    logger.setLevel(_parse_level(level))
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    if not name or not name.startswith(_PKG_LOGGER_NAME):
        name = _PKG_LOGGER_NAME if not name else f"{_PKG_LOGGER_NAME}.{name}"

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return structlog.wrap_logger(
        logging.getLogger(name),
        processors=list(_PROCESSORS),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
    )
