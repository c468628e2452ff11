"""AI chart interpretations with progressive caching."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from astrocache.schemas import CachedInterpretation
    from astrocache.services.cache import InterpretationCache
    from astrocache.services.vertex_ai import VertexAIService

logger = structlog.get_logger()


class InterpretationService:
    """Stream interpretations from the model, writing each chunk through to the cache."""

    def __init__(self, vertex_ai: VertexAIService, cache: InterpretationCache) -> None:
        self.vertex_ai = vertex_ai
        self.cache = cache

    async def get_cached(self, chart_id: str) -> CachedInterpretation | None:
        return await self.cache.get_interpretation(chart_id)

    async def discard(self, chart_id: str) -> None:
        """Drop the cached interpretation, e.g. once the chart has been saved."""
        await self.cache.delete_interpretation(chart_id)
        logger.debug("Interpretation discarded", chart_id=chart_id)

    async def stream(
        self,
        chart_id: str,
        messages: list[dict[str, str]],
        regenerate: bool = False,
    ) -> AsyncGenerator[str, None]:
        """Yield the interpretation text for ``chart_id``.

        A complete cached interpretation is yielded as a single chunk unless
        ``regenerate`` is set. Otherwise the model is streamed and the text
        accumulated so far is saved after every chunk, then marked complete.
        """
        if not regenerate:
            cached = await self.cache.get_interpretation(chart_id)
            if cached is not None and cached.is_complete:
                logger.debug("Serving cached interpretation", chart_id=chart_id)
                yield cached.content
                return

        if not self.vertex_ai.is_initialized:
            logger.warning("Interpretation requested without a configured model", chart_id=chart_id)
            msg = "Vertex AI not initialized"
            raise RuntimeError(msg)

        content = ""
        async for chunk in self.vertex_ai.generate_chat_response_stream(messages):
            content += chunk
            await self.cache.save_chunk(chart_id, content, is_complete=False)
            yield chunk
        await self.cache.save_chunk(chart_id, content, is_complete=True)
        logger.info("Interpretation generated", chart_id=chart_id, length=len(content))
