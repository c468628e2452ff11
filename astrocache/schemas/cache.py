"""Cache-related schemas."""

from typing import Any

import msgspec

from astrocache.schemas.base import CamelizedBaseStruct

__all__ = (
    "CacheEntry",
    "CacheEntryInfo",
    "CacheInfo",
    "CachedInterpretation",
    "ClearCacheResult",
    "StoredRecord",
)


class StoredRecord(msgspec.Struct, gc=False):
    """Row persisted by a storage backend.

    ``payload`` is the JSON-encoded cached value; ``meta`` carries the
    key-derived metadata reported by ``info()``.
    """

    store: str
    key: str
    payload: str
    stored_at: int
    schema_version: int
    meta: dict[str, Any] = msgspec.field(default_factory=dict)


class CacheEntry(msgspec.Struct, gc=False):
    """Decoded cache entry returned to callers."""

    key: str
    payload: Any
    stored_at: int
    schema_version: int
    meta: dict[str, Any] = msgspec.field(default_factory=dict)


class CacheEntryInfo(CamelizedBaseStruct):
    key: str
    stored_at: int
    schema_version: int
    meta: dict[str, Any] = msgspec.field(default_factory=dict)


class CacheInfo(CamelizedBaseStruct):
    """Introspection result for a single store."""

    store: str
    count: int = 0
    entries: list[CacheEntryInfo] = msgspec.field(default_factory=list)


class CachedInterpretation(CamelizedBaseStruct):
    """AI interpretation text, possibly still being streamed."""

    content: str
    is_complete: bool = False


class ClearCacheResult(CamelizedBaseStruct):
    """Aggregate outcome of clearing one or more stores."""

    success: bool
    stores: dict[str, bool] = msgspec.field(default_factory=dict)
