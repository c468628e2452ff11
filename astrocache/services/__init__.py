"""Service layer: local result cache, remote API client and the services built on them."""

from __future__ import annotations

from astrocache.services.astrologer import AstrologerClient
from astrocache.services.cache import (
    CacheRegistry,
    EphemerisCache,
    InterpretationCache,
    ResultCache,
    TransitMonthCache,
    ephemeris_cache_key,
    generate_chart_id,
)
from astrocache.services.ephemeris import EphemerisService
from astrocache.services.interpretation import InterpretationService
from astrocache.services.storage import MemoryStorage, SQLiteStorage, StorageBackend
from astrocache.services.transits import TransitRangeService, TransitTimelineService
from astrocache.services.vertex_ai import VertexAIService

__all__ = (
    "AstrologerClient",
    "CacheRegistry",
    "EphemerisCache",
    "EphemerisService",
    "InterpretationCache",
    "InterpretationService",
    "MemoryStorage",
    "ResultCache",
    "SQLiteStorage",
    "StorageBackend",
    "TransitMonthCache",
    "TransitRangeService",
    "TransitTimelineService",
    "VertexAIService",
    "ephemeris_cache_key",
    "generate_chart_id",
)
