"""Data schemas using msgspec for high-performance serialization."""

from astrocache.schemas.astrology import (
    Aspect,
    ComputationOptions,
    EphemerisDay,
    EphemerisPoint,
    HouseComparison,
    HouseComparisonPoint,
    Subject,
    SubjectResponse,
    TransitChartData,
    TransitChartResponse,
    TransitDayResult,
)
from astrocache.schemas.base import BaseStruct, CamelizedBaseStruct
from astrocache.schemas.cache import (
    CachedInterpretation,
    CacheEntry,
    CacheEntryInfo,
    CacheInfo,
    ClearCacheResult,
    StoredRecord,
)
from astrocache.schemas.requests import InterpretationRequest, TransitRangeRequest, TransitTimelineRequest

__all__ = (
    "Aspect",
    "BaseStruct",
    "CacheEntry",
    "CacheEntryInfo",
    "CacheInfo",
    "CachedInterpretation",
    "CamelizedBaseStruct",
    "ClearCacheResult",
    "ComputationOptions",
    "EphemerisDay",
    "EphemerisPoint",
    "HouseComparison",
    "HouseComparisonPoint",
    "InterpretationRequest",
    "StoredRecord",
    "Subject",
    "SubjectResponse",
    "TransitChartData",
    "TransitChartResponse",
    "TransitDayResult",
    "TransitRangeRequest",
    "TransitTimelineRequest",
)
