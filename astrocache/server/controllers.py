"""HTTP controllers for the astrology cache service."""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Annotated

import msgspec
import structlog
from litestar import Controller, delete, get, post
from litestar.di import Provide
from litestar.exceptions import NotFoundException, ServiceUnavailableException
from litestar.params import Parameter
from litestar.response import Stream
from litestar.status_codes import HTTP_200_OK

from astrocache.lib.exceptions import EphemerisUnavailableError
from astrocache.schemas import (
    CachedInterpretation,
    CacheInfo,
    ClearCacheResult,
    EphemerisDay,
    InterpretationRequest,
    TransitDayResult,
    TransitRangeRequest,
    TransitTimelineRequest,
)
from astrocache.server import deps
from astrocache.services.cache import CacheRegistry, generate_chart_id
from astrocache.services.ephemeris import EphemerisService
from astrocache.services.interpretation import InterpretationService
from astrocache.services.transits import TransitRangeService, TransitTimelineService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = structlog.get_logger()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
    "X-Content-Type-Options": "nosniff",
}


def _sse(payload: dict[str, object]) -> str:
    return f"data: {msgspec.json.encode(payload).decode()}\n\n"


class TransitController(Controller):
    """Daily transit data over date ranges."""

    path = "/api/transits"
    tags = ["Transits"]
    dependencies = {
        "transit_range_service": Provide(deps.provide_transit_range_service, sync_to_thread=False),
        "transit_timeline_service": Provide(deps.provide_transit_timeline_service, sync_to_thread=False),
    }

    @post(path="/range", name="transits.range", status_code=HTTP_200_OK)
    async def get_transit_range(
        self,
        data: TransitRangeRequest,
        transit_range_service: TransitRangeService,
    ) -> list[TransitDayResult]:
        """Fetch one transit result per day; days that fail are left out."""
        return await transit_range_service.get_transit_range(data.subject, data.start_date, data.end_date, data.options)

    @post(path="/timeline", name="transits.timeline", status_code=HTTP_200_OK)
    async def get_transit_timeline(
        self,
        data: TransitTimelineRequest,
        transit_timeline_service: TransitTimelineService,
    ) -> list[TransitDayResult]:
        """Month-cached transit timeline of a saved subject."""
        return await transit_timeline_service.load(
            data.subject_id,
            data.subject,
            data.start_date,
            data.end_date,
            data.options,
        )


class EphemerisController(Controller):
    path = "/api/ephemeris"
    tags = ["Ephemeris"]
    dependencies = {"ephemeris_service": Provide(deps.provide_ephemeris_service, sync_to_thread=False)}

    @get(path="/", name="ephemeris.list")
    async def get_ephemeris(
        self,
        ephemeris_service: EphemerisService,
        start: date | None = None,
        end: date | None = None,
        skip_cache: Annotated[bool, Parameter(query="skipCache")] = False,
        active_points: Annotated[list[str] | None, Parameter(query="activePoints")] = None,
    ) -> list[EphemerisDay]:
        """Daily planet and house positions, one year from today by default."""
        try:
            return await ephemeris_service.fetch_ephemeris(
                start=start,
                end=end,
                active_points=active_points,
                skip_cache=skip_cache,
            )
        except EphemerisUnavailableError as e:
            raise ServiceUnavailableException(detail=str(e)) from e


class InterpretationController(Controller):
    path = "/api/interpretations"
    tags = ["Interpretations"]
    dependencies = {
        "interpretation_service": Provide(deps.provide_interpretation_service, sync_to_thread=False),
    }

    @post(path="/stream", name="interpretations.stream", status_code=HTTP_200_OK)
    async def stream_interpretation(
        self,
        data: InterpretationRequest,
        interpretation_service: InterpretationService,
    ) -> Stream:
        """Stream an interpretation using Server-Sent Events."""
        chart_id = generate_chart_id(
            data.chart_type,
            data.subject_name,
            data.subject_date,
            data.second_subject_name,
            data.second_subject_date,
        )
        messages = [{"role": "user", "content": data.prompt}]

        async def generate() -> AsyncGenerator[str, None]:
            try:
                async for chunk in interpretation_service.stream(chart_id, messages, regenerate=data.regenerate):
                    if chunk:
                        yield _sse({"chunk": chunk, "chartId": chart_id})
                yield _sse({"done": True, "chartId": chart_id})
            except Exception as e:  # noqa: BLE001
                logger.error("Interpretation stream failed", chart_id=chart_id, error=str(e))
                yield _sse({"error": "Service temporarily unavailable", "chartId": chart_id})

        return Stream(generate(), media_type="text/event-stream", headers=SSE_HEADERS)

    @get(path="/{chart_id:str}", name="interpretations.get")
    async def get_interpretation(
        self,
        chart_id: str,
        interpretation_service: InterpretationService,
    ) -> CachedInterpretation:
        cached = await interpretation_service.get_cached(chart_id)
        if cached is None:
            raise NotFoundException(detail=f"No cached interpretation for {chart_id}")
        return cached

    @delete(path="/{chart_id:str}", name="interpretations.delete")
    async def delete_interpretation(self, chart_id: str, interpretation_service: InterpretationService) -> None:
        """Drop the temporary interpretation once its chart has been saved."""
        await interpretation_service.discard(chart_id)


class CacheController(Controller):
    """Local result cache management."""

    path = "/api/cache"
    tags = ["Cache"]
    dependencies = {"cache_registry": Provide(deps.provide_cache_registry, sync_to_thread=False)}

    @get(path="/", name="cache.info")
    async def get_cache_info(self, cache_registry: CacheRegistry) -> list[CacheInfo]:
        return await cache_registry.info()

    @delete(path="/", name="cache.clear", status_code=HTTP_200_OK)
    async def clear_cache(self, cache_registry: CacheRegistry) -> ClearCacheResult:
        """Clear every store."""
        return await cache_registry.clear_all()

    @delete(path="/{store:str}", name="cache.clear_store", status_code=HTTP_200_OK)
    async def clear_store(self, store: str, cache_registry: CacheRegistry) -> ClearCacheResult:
        try:
            return await cache_registry.clear_store(store)
        except KeyError as e:
            raise NotFoundException(detail=f"Unknown cache store: {store}") from e

    @post(path="/purge", name="cache.purge", status_code=HTTP_200_OK)
    async def purge_cache(self, cache_registry: CacheRegistry) -> dict[str, int]:
        """Remove expired and stale entries from every store."""
        return {"purged": await cache_registry.purge_expired()}
