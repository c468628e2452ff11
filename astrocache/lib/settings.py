"""Application settings management."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, cast

from litestar.data_extractors import RequestExtractorField

from astrocache.utils.env import get_env

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar.data_extractors import ResponseExtractorField


@dataclass
class CacheSettings:
    """Local result cache configuration."""

    DATABASE_PATH: Path = field(default_factory=get_env("CACHE_DATABASE_PATH", Path(".astrocache/cache.db")))
    """SQLite file backing the local result cache."""
    EPHEMERIS_TTL_DAYS: int = field(default_factory=get_env("CACHE_EPHEMERIS_TTL_DAYS", 30))
    """Ephemeris range TTL in days."""
    INTERPRETATION_TTL_DAYS: int = field(default_factory=get_env("CACHE_INTERPRETATION_TTL_DAYS", 7))
    """AI interpretation text TTL in days."""
    TRANSIT_TTL_DAYS: int = field(default_factory=get_env("CACHE_TRANSIT_TTL_DAYS", 5))
    """Monthly transit data TTL in days."""


@dataclass
class AstrologerSettings:
    """Remote chart computation API configuration."""

    URL: str = field(default_factory=get_env("ASTROLOGER_API_URL", "https://astrologer.p.rapidapi.com/api/v5"))
    """Base URL of the astrology calculation API."""
    HOST: str = field(default_factory=get_env("ASTROLOGER_API_HOST", "astrologer.p.rapidapi.com"))
    """Value sent in the host header."""
    HOST_HEADER: str = field(default_factory=get_env("ASTROLOGER_API_HOST_HEADER", "X-RapidAPI-Host"))
    """Name of the host header."""
    KEY: str = field(default_factory=get_env("ASTROLOGER_API_KEY", ""))
    """API key. Sent only when set."""
    KEY_HEADER: str = field(default_factory=get_env("ASTROLOGER_API_KEY_HEADER", "X-RapidAPI-Key"))
    """Name of the API key header."""
    TIMEOUT_SECONDS: float = field(default_factory=get_env("ASTROLOGER_API_TIMEOUT_SECONDS", 15.0))
    """Per-request timeout."""


@dataclass
class TransitSettings:
    """Batch transit range fetch configuration."""

    CONCURRENCY: int = field(default_factory=get_env("TRANSIT_CONCURRENCY", 5))
    """Maximum number of remote calls in flight."""
    MAX_ATTEMPTS: int = field(default_factory=get_env("TRANSIT_MAX_ATTEMPTS", 3))
    """Attempts per day, first call included."""
    RETRY_DELAY_MS: int = field(default_factory=get_env("TRANSIT_RETRY_DELAY_MS", 1000))
    """Linear backoff unit; attempt ``n`` waits ``n * RETRY_DELAY_MS``."""


@dataclass
class VertexAISettings:
    """Vertex AI configuration settings."""

    PROJECT_ID: str = field(default_factory=get_env("VERTEX_AI_PROJECT_ID", ""))
    """Google Cloud Project ID for Vertex AI."""
    LOCATION: str = field(default_factory=get_env("VERTEX_AI_LOCATION", "us-central1"))
    """Vertex AI location/region."""
    CHAT_MODEL: str = field(default_factory=get_env("VERTEX_AI_CHAT_MODEL", "gemini-2.5-flash-lite"))
    """Vertex AI chat model used for interpretations."""
    TEMPERATURE: float = field(default_factory=get_env("VERTEX_AI_TEMPERATURE", 0.7))
    """Sampling temperature."""
    MAX_OUTPUT_TOKENS: int = field(default_factory=get_env("VERTEX_AI_MAX_OUTPUT_TOKENS", 2048))
    """Maximum response tokens per interpretation."""


@dataclass
class LogSettings:
    """Logger configuration."""

    LEVEL: int = field(default_factory=get_env("LOG_LEVEL", 30))
    """Stdlib log levels.

    Only emit logs at this level, or higher.
    """
    REQUEST_FIELDS: list[RequestExtractorField] = field(
        default_factory=get_env(
            "LOG_REQUEST_FIELDS",
            [
                "path",
                "method",
                "query",
                "path_params",
            ],
            list,
        ),
    )
    """Attributes of the Request to be logged."""
    RESPONSE_FIELDS: list[ResponseExtractorField] = field(
        default_factory=cast(
            "Callable[[],list[ResponseExtractorField]]",
            get_env(
                "LOG_RESPONSE_FIELDS",
                ["status_code"],
            ),
        ),
    )
    """Attributes of the Response to be logged."""
    SQLSPEC_LEVEL: int = field(default_factory=get_env("SQLSPEC_LOG_LEVEL", 30))
    """Level to log SQLSpec logs."""
    AIOSQLITE_LEVEL: int = field(default_factory=get_env("AIOSQLITE_LOG_LEVEL", 30))
    """Level to log aiosqlite logs."""
    HTTPX_LEVEL: int = field(default_factory=get_env("HTTPX_LOG_LEVEL", 30))
    """Level to log outgoing HTTP requests."""
    ASGI_ACCESS_LEVEL: int = field(default_factory=get_env("ASGI_ACCESS_LOG_LEVEL", 30))
    """Level to log granian access logs."""
    ASGI_ERROR_LEVEL: int = field(default_factory=get_env("ASGI_ERROR_LOG_LEVEL", 30))
    """Level to log granian error logs."""


@dataclass
class AppSettings:
    """Application configuration."""

    NAME: str = field(default_factory=lambda: "Astro Cache")
    """Application name."""
    VERSION: str = field(default="0.1.0")
    """Current application version."""
    DEBUG: bool = field(default_factory=get_env("DEBUG", False))
    """Run application with debug mode."""
    ALLOWED_CORS_ORIGINS: list[str] | str = field(default_factory=get_env("ALLOWED_CORS_ORIGINS", ["*"], list))
    """Allowed CORS Origins"""

    def __post_init__(self) -> None:
        if isinstance(self.ALLOWED_CORS_ORIGINS, str):
            if self.ALLOWED_CORS_ORIGINS.startswith("[") and self.ALLOWED_CORS_ORIGINS.endswith("]"):
                try:
                    self.ALLOWED_CORS_ORIGINS = json.loads(self.ALLOWED_CORS_ORIGINS)  # pyright: ignore[reportConstantRedefinition]
                except (SyntaxError, ValueError):
                    msg = "ALLOWED_CORS_ORIGINS is not a valid list representation."
                    raise ValueError(msg) from None
            else:
                self.ALLOWED_CORS_ORIGINS = [host.strip() for host in self.ALLOWED_CORS_ORIGINS.split(",")]  # pyright: ignore[reportConstantRedefinition]


@dataclass
class Settings:
    """Main application settings."""

    app: AppSettings = field(default_factory=AppSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    astrologer: AstrologerSettings = field(default_factory=AstrologerSettings)
    transits: TransitSettings = field(default_factory=TransitSettings)
    vertex_ai: VertexAISettings = field(default_factory=VertexAISettings)
    log: LogSettings = field(default_factory=LogSettings)

    @classmethod
    @lru_cache(maxsize=1, typed=True)
    def from_env(cls, dotenv_filename: str = ".env") -> Settings:
        from dotenv import load_dotenv

        env_file = Path(f"{os.curdir}/{dotenv_filename}")
        if env_file.is_file():
            load_dotenv(env_file, override=True)

        try:
            app: AppSettings = AppSettings()
            cache: CacheSettings = CacheSettings()
            astrologer: AstrologerSettings = AstrologerSettings()
            transits: TransitSettings = TransitSettings()
            vertex_ai: VertexAISettings = VertexAISettings()
            log: LogSettings = LogSettings()
        except (ValueError, TypeError, KeyError) as e:
            import structlog

            logger = structlog.get_logger()
            logger.fatal("Could not load settings", error=str(e))
            sys.exit(1)

        return Settings(
            app=app,
            cache=cache,
            astrologer=astrologer,
            transits=transits,
            vertex_ai=vertex_ai,
            log=log,
        )


def get_settings(dotenv_filename: str = ".env") -> Settings:
    """Get application settings."""
    return Settings.from_env(dotenv_filename)
