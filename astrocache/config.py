"""Application configuration management."""

from __future__ import annotations

import logging
from typing import cast

import structlog
from litestar.config.cors import CORSConfig
from litestar.exceptions import NotFoundException
from litestar.logging.config import (
    LoggingConfig,
    StructLoggingConfig,
    default_logger_factory,
)
from litestar.middleware.logging import LoggingMiddlewareConfig
from litestar.plugins.problem_details import ProblemDetailsConfig
from litestar.plugins.structlog import StructlogConfig

from astrocache.lib import log as log_conf
from astrocache.lib.settings import get_settings

settings = get_settings()


cors = CORSConfig(allow_origins=cast("list[str]", settings.app.ALLOWED_CORS_ORIGINS))
problem_details = ProblemDetailsConfig(enable_for_all_http_exceptions=True)


def _library_logger(level: int) -> dict[str, object]:
    return {"propagate": False, "level": level, "handlers": ["queue_listener"]}


log = StructlogConfig(
    enable_middleware_logging=False,
    structlog_logging_config=StructLoggingConfig(
        log_exceptions="always",
        cache_logger_on_first_use=False,
        processors=log_conf.structlog_processors(as_json=not log_conf.is_tty()),  # type: ignore[has-type,unused-ignore]
        logger_factory=default_logger_factory(as_json=not log_conf.is_tty()),  # type: ignore[has-type,unused-ignore]
        disable_stack_trace={404, NotFoundException},
        standard_lib_logging_config=LoggingConfig(
            log_exceptions="always",
            disable_stack_trace={404, NotFoundException},
            root={"level": logging.getLevelName(settings.log.LEVEL), "handlers": ["queue_listener"]},
            formatters={
                "standard": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": log_conf.stdlib_logger_processors(as_json=not log_conf.is_tty()),  # type: ignore[has-type,unused-ignore]
                },
            },
            loggers={
                "sqlspec": _library_logger(settings.log.SQLSPEC_LEVEL),
                "aiosqlite": _library_logger(settings.log.AIOSQLITE_LEVEL),
                "httpx": _library_logger(settings.log.HTTPX_LEVEL),
                "httpcore": _library_logger(settings.log.HTTPX_LEVEL),
                "_granian": _library_logger(settings.log.ASGI_ERROR_LEVEL),
                "granian.server": _library_logger(settings.log.ASGI_ERROR_LEVEL),
                "granian.access": _library_logger(settings.log.ASGI_ACCESS_LEVEL),
            },
        ),
    ),
    middleware_logging_config=LoggingMiddlewareConfig(
        request_log_fields=settings.log.REQUEST_FIELDS,
        response_log_fields=settings.log.RESPONSE_FIELDS,
    ),
)


def setup_logging() -> None:
    """Configure stdlib and structlog logging outside of a running app (CLI commands)."""
    if log.structlog_logging_config.standard_lib_logging_config:
        log.structlog_logging_config.standard_lib_logging_config.configure()
    log.structlog_logging_config.configure()
    structlog.configure(
        cache_logger_on_first_use=log.structlog_logging_config.cache_logger_on_first_use,
        logger_factory=log.structlog_logging_config.logger_factory,
        processors=log.structlog_logging_config.processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.log.LEVEL),
    )
