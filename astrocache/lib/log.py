"""Structlog processor chains shared by the Litestar plugin and the CLI."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import structlog
from litestar.logging.config import default_json_serializer

if TYPE_CHECKING:
    from structlog.typing import Processor

__all__ = (
    "is_tty",
    "stdlib_logger_processors",
    "structlog_processors",
)


def is_tty() -> bool:
    return bool(sys.stderr.isatty() or sys.stdout.isatty())


def structlog_processors(as_json: bool = True) -> list[Processor]:
    """Processors for loggers obtained through ``structlog.get_logger``.

    JSON output is rendered to ``bytes`` to match the ``BytesLoggerFactory``
    Litestar pairs with JSON logging.

    Args:
        as_json: Render JSON lines instead of the coloured console format.

    Returns:
        Processor chain
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if as_json:
        processors.extend(
            [
                structlog.processors.format_exc_info,
                structlog.processors.dict_tracebacks,
                structlog.processors.JSONRenderer(serializer=default_json_serializer),
            ],
        )
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def stdlib_logger_processors(as_json: bool = True) -> list[Processor]:
    """Processors for the ``ProcessorFormatter`` attached to stdlib handlers."""
    renderer: Processor = (
        structlog.processors.JSONRenderer() if as_json else structlog.dev.ConsoleRenderer(colors=True)
    )
    return [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        renderer,
    ]
