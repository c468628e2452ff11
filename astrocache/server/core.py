"""Application core plugin."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from litestar.plugins import CLIPluginProtocol, InitPluginProtocol

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from click import Group
    from litestar import Litestar
    from litestar.config.app import AppConfig


logger = structlog.get_logger()


class ApplicationCore(InitPluginProtocol, CLIPluginProtocol):
    """Application core configuration plugin.

    Registers routes, plugins and CLI commands, and owns the lifespan of the
    cache storage, the remote API client and the services built on them.
    """

    __slots__ = ("app_name",)
    app_name: str

    def __init__(self) -> None:
        """Initialize the plugin."""

    def on_cli_init(self, cli: Group) -> None:
        """Configure CLI commands."""
        from astrocache.cli.commands import cache_group, transits_group
        from astrocache.lib.settings import get_settings

        settings = get_settings()
        self.app_name = settings.app.NAME
        cli.add_command(cache_group)
        cli.add_command(transits_group)

    @asynccontextmanager
    async def server_lifespan(self, app: Litestar) -> AsyncGenerator[None, None]:
        """Open the cache storage and API client, and run the startup cache cleanup.

        Services already present in ``app.state`` are used as given and left
        open on shutdown.

        Args:
            app: The Litestar application instance.

        Yields:
            None during application runtime.
        """
        from astrocache.lib.settings import get_settings
        from astrocache.services import (
            AstrologerClient,
            CacheRegistry,
            EphemerisService,
            InterpretationService,
            SQLiteStorage,
            TransitRangeService,
            TransitTimelineService,
            VertexAIService,
        )

        settings = get_settings()
        storage = app.state.get("cache_storage") or SQLiteStorage(settings.cache.DATABASE_PATH)
        await storage.open()

        client = app.state.get("astrologer_client")
        owns_client = client is None
        if client is None:
            client = AstrologerClient.from_settings(settings.astrologer)
        vertex_ai = app.state.get("vertex_ai_service") or VertexAIService(settings.vertex_ai)

        registry = CacheRegistry(storage, settings.cache)
        range_service = app.state.get("transit_range_service") or TransitRangeService.from_settings(
            client,
            settings.transits,
        )
        app.state.update(
            {
                "cache_storage": storage,
                "astrologer_client": client,
                "vertex_ai_service": vertex_ai,
                "cache_registry": registry,
                "transit_range_service": range_service,
                "transit_timeline_service": TransitTimelineService(range_service, registry.transits),
                "ephemeris_service": EphemerisService(
                    client,
                    registry.ephemeris,
                    concurrency=settings.transits.CONCURRENCY,
                ),
                "interpretation_service": InterpretationService(vertex_ai, registry.interpretations),
            },
        )
        await registry.cleanup_expired()
        logger.info("Astro cache started", database=str(settings.cache.DATABASE_PATH))

        try:
            yield
        finally:
            logger.info("Shutting down astro cache")
            if owns_client:
                await client.aclose()
            await storage.close()

    def on_app_init(self, app_config: AppConfig) -> AppConfig:
        """Configure the application with our routes, plugins and lifespan.

        Args:
            app_config: The AppConfig instance.

        Returns:
            The configured app config.
        """
        from litestar.openapi import OpenAPIConfig
        from litestar.openapi.plugins import ScalarRenderPlugin

        from astrocache import config
        from astrocache.lib.settings import get_settings
        from astrocache.server import plugins
        from astrocache.server.controllers import (
            CacheController,
            EphemerisController,
            InterpretationController,
            TransitController,
        )

        settings = get_settings()
        self.app_name = settings.app.NAME
        app_config.debug = settings.app.DEBUG

        app_config.lifespan = [self.server_lifespan]

        app_config.openapi_config = OpenAPIConfig(
            title=settings.app.NAME,
            version=settings.app.VERSION,
            use_handler_docstrings=True,
            render_plugins=[ScalarRenderPlugin(version="latest")],
        )
        app_config.cors_config = config.cors
        app_config.plugins.extend(
            [
                plugins.structlog,
                plugins.granian,
                plugins.problem_details,
            ],
        )

        app_config.route_handlers.extend(
            [
                CacheController,
                EphemerisController,
                InterpretationController,
                TransitController,
            ],
        )
        return app_config
