"""Local result cache for computed astrology data and AI interpretations.

A :class:`ResultCache` owns one named store of a :class:`StorageBackend`.
Entries are served only while they are younger than the store's TTL and
were written with the store's current schema version; anything else is
deleted on read and reported as a miss. Cache failures never propagate to
callers: reads degrade to a miss, writes to ``False``.
"""

from __future__ import annotations

import calendar
import time
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import msgspec
import structlog

from astrocache.lib.exceptions import is_quota_exceeded_error
from astrocache.schemas import (
    CachedInterpretation,
    CacheEntry,
    CacheEntryInfo,
    CacheInfo,
    ClearCacheResult,
    EphemerisDay,
    StoredRecord,
    TransitDayResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from astrocache.lib.settings import CacheSettings
    from astrocache.services.storage import StorageBackend

logger = structlog.get_logger()

__all__ = (
    "EPHEMERIS_STORE",
    "INTERPRETATION_STORE",
    "TRANSIT_STORE",
    "CacheRegistry",
    "EphemerisCache",
    "InterpretationCache",
    "ResultCache",
    "TransitMonthCache",
    "ephemeris_cache_key",
    "generate_chart_id",
    "now_ms",
    "transit_month_key",
)

T = TypeVar("T")

DAY_MS = 24 * 60 * 60 * 1000

EPHEMERIS_STORE = "ephemeris"
INTERPRETATION_STORE = "interpretations"
TRANSIT_STORE = "transits"

EPHEMERIS_SCHEMA_VERSION = 1
INTERPRETATION_SCHEMA_VERSION = 1
TRANSIT_SCHEMA_VERSION = 2

# Quota recovery: delete this many of the oldest entries, doubling per attempt.
QUOTA_RECOVERY_BATCH = 10
QUOTA_RECOVERY_MAX_BATCH = 200
QUOTA_RECOVERY_MAX_ATTEMPTS = 3


def now_ms() -> int:
    """Wall clock in milliseconds since the epoch."""
    return int(time.time() * 1000)


class ResultCache(Generic[T]):
    """TTL and schema-version gated cache over a single store.

    Args:
        storage: Engine holding the entries.
        store: Store name; operations never touch other stores.
        ttl_ms: Maximum entry age served, inclusive.
        schema_version: Entries written with another version are stale.
        payload_type: Type the JSON payload is decoded into.
        clock: Millisecond clock, injectable for tests.
    """

    def __init__(
        self,
        storage: StorageBackend,
        store: str,
        ttl_ms: int,
        schema_version: int,
        payload_type: Any = Any,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.storage = storage
        self.store = store
        self.ttl_ms = ttl_ms
        self.schema_version = schema_version
        self.payload_type = payload_type
        self.clock = clock or now_ms

    def is_fresh(self, stored_at: int, schema_version: int) -> bool:
        return schema_version == self.schema_version and self.clock() - stored_at <= self.ttl_ms

    @staticmethod
    def _check_key(key: str) -> None:
        if not key:
            msg = "Cache key must be a non-empty string"
            raise ValueError(msg)

    async def get_entry(self, key: str) -> CacheEntry | None:
        """Look up ``key`` and return the decoded entry with its metadata.

        Returns:
            The entry, or ``None`` when missing, expired, stale or unreadable.
        """
        self._check_key(key)
        try:
            record = await self.storage.get(self.store, key)
            if record is None:
                logger.debug("Cache miss", store=self.store, key=key)
                return None
            if not self.is_fresh(record.stored_at, record.schema_version):
                logger.debug(
                    "Cache entry expired",
                    store=self.store,
                    key=key,
                    stored_at=record.stored_at,
                    schema_version=record.schema_version,
                )
                await self.storage.delete(self.store, key)
                return None
            try:
                payload = msgspec.json.decode(record.payload, type=self.payload_type)
            except (msgspec.DecodeError, msgspec.ValidationError) as e:
                logger.warning("Discarding undecodable cache entry", store=self.store, key=key, error=str(e))
                await self.storage.delete(self.store, key)
                return None
        except Exception as e:  # noqa: BLE001
            logger.error("Cache read failed", store=self.store, key=key, error=str(e))
            return None
        logger.debug("Cache hit", store=self.store, key=key)
        return CacheEntry(
            key=key,
            payload=payload,
            stored_at=record.stored_at,
            schema_version=record.schema_version,
            meta=record.meta,
        )

    async def get(self, key: str) -> T | None:
        entry = await self.get_entry(key)
        return entry.payload if entry is not None else None

    async def set(self, key: str, payload: T, meta: dict[str, Any] | None = None) -> bool:
        """Store ``payload`` under ``key``, replacing any previous entry.

        When the engine is out of space the oldest entries of this store are
        deleted and the write retried, with a growing batch each time.

        Returns:
            ``True`` if the entry was written.
        """
        self._check_key(key)
        try:
            record = StoredRecord(
                store=self.store,
                key=key,
                payload=msgspec.json.encode(payload).decode(),
                stored_at=self.clock(),
                schema_version=self.schema_version,
                meta=meta or {},
            )
        except (msgspec.EncodeError, TypeError) as e:
            logger.error("Could not encode cache payload", store=self.store, key=key, error=str(e))
            return False

        batch = QUOTA_RECOVERY_BATCH
        recoveries = 0
        while True:
            try:
                await self.storage.put(record)
            except Exception as e:  # noqa: BLE001
                if not is_quota_exceeded_error(e):
                    logger.error("Cache write failed", store=self.store, key=key, error=str(e))
                    return False
                if recoveries >= QUOTA_RECOVERY_MAX_ATTEMPTS:
                    logger.error("Cache quota recovery exhausted", store=self.store, key=key, attempts=recoveries)
                    return False
                recoveries += 1
                logger.warning("Cache quota exceeded, evicting oldest entries", store=self.store, batch=batch)
                try:
                    deleted = await self.storage.delete_oldest(self.store, batch)
                except Exception as evict_error:  # noqa: BLE001
                    logger.error("Cache eviction failed", store=self.store, error=str(evict_error))
                    return False
                if deleted == 0:
                    logger.error("Cache quota exceeded with nothing left to evict", store=self.store, key=key)
                    return False
                batch = min(batch * 2, QUOTA_RECOVERY_MAX_BATCH)
            else:
                logger.debug("Cache write", store=self.store, key=key)
                return True

    async def delete(self, key: str) -> None:
        self._check_key(key)
        try:
            await self.storage.delete(self.store, key)
        except Exception as e:  # noqa: BLE001
            logger.error("Cache delete failed", store=self.store, key=key, error=str(e))

    async def clear(self) -> bool:
        """Remove every entry of this store."""
        try:
            removed = await self.storage.clear(self.store)
        except Exception as e:  # noqa: BLE001
            logger.error("Cache clear failed", store=self.store, error=str(e))
            return False
        logger.info("Cache cleared", store=self.store, removed=removed)
        return True

    async def info(self) -> CacheInfo:
        try:
            records = await self.storage.list(self.store)
        except Exception as e:  # noqa: BLE001
            logger.error("Cache info failed", store=self.store, error=str(e))
            return CacheInfo(store=self.store)
        return CacheInfo(
            store=self.store,
            count=len(records),
            entries=[
                CacheEntryInfo(
                    key=record.key,
                    stored_at=record.stored_at,
                    schema_version=record.schema_version,
                    meta=record.meta,
                )
                for record in records
            ],
        )

    async def purge_expired(self) -> int:
        """Delete expired and stale-version entries.

        Returns:
            Number of entries removed.
        """
        removed = 0
        try:
            for record in await self.storage.list(self.store):
                if not self.is_fresh(record.stored_at, record.schema_version):
                    removed += await self.storage.delete(self.store, record.key)
        except Exception as e:  # noqa: BLE001
            logger.error("Cache purge failed", store=self.store, error=str(e))
            return 0
        if removed:
            logger.info("Purged expired cache entries", store=self.store, removed=removed)
        return removed


def _utc_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).date()
    return value


def ephemeris_cache_key(start: date | datetime, end: date | datetime) -> str:
    """Key of an ephemeris range: ``YYYY-MM-DD_to_YYYY-MM-DD`` of the UTC dates.

    Naive datetimes are taken as UTC.
    """
    return f"{_utc_date(start).isoformat()}_to_{_utc_date(end).isoformat()}"


def generate_chart_id(
    chart_type: str,
    subject_name: str,
    subject_date: str,
    second_subject_name: str | None = None,
    second_subject_date: str | None = None,
) -> str:
    """Build the interpretation key of a chart.

    The first three parts are always present; each second-subject part only
    when non-empty. Names containing ``-`` can collide.
    """
    parts = [chart_type, subject_name, subject_date]
    parts.extend(part for part in (second_subject_name, second_subject_date) if part)
    return "-".join(parts)


def transit_month_key(subject_id: str, year: int, month: int) -> str:
    return f"{subject_id}_{year:04d}-{month:02d}"


class EphemerisCache(ResultCache[list[EphemerisDay]]):
    """Daily planetary positions keyed by date range."""

    def __init__(self, storage: StorageBackend, ttl_days: int = 30, clock: Callable[[], int] | None = None) -> None:
        super().__init__(
            storage,
            EPHEMERIS_STORE,
            ttl_ms=ttl_days * DAY_MS,
            schema_version=EPHEMERIS_SCHEMA_VERSION,
            payload_type=list[EphemerisDay],
            clock=clock,
        )

    async def get_range(self, start: date | datetime, end: date | datetime) -> list[EphemerisDay] | None:
        return await self.get(ephemeris_cache_key(start, end))

    async def set_range(self, start: date | datetime, end: date | datetime, days: list[EphemerisDay]) -> bool:
        meta = {"start": _utc_date(start).isoformat(), "end": _utc_date(end).isoformat(), "days": len(days)}
        return await self.set(ephemeris_cache_key(start, end), days, meta=meta)


class InterpretationCache(ResultCache[CachedInterpretation]):
    """AI interpretation text keyed by chart id."""

    def __init__(self, storage: StorageBackend, ttl_days: int = 7, clock: Callable[[], int] | None = None) -> None:
        super().__init__(
            storage,
            INTERPRETATION_STORE,
            ttl_ms=ttl_days * DAY_MS,
            schema_version=INTERPRETATION_SCHEMA_VERSION,
            payload_type=CachedInterpretation,
            clock=clock,
        )

    async def get_interpretation(self, chart_id: str) -> CachedInterpretation | None:
        return await self.get(chart_id)

    async def save_chunk(self, chart_id: str, content: str, is_complete: bool = False) -> bool:
        """Overwrite the entry with the text accumulated so far."""
        return await self.set(
            chart_id,
            CachedInterpretation(content=content, is_complete=is_complete),
            meta={"chart_id": chart_id, "is_complete": is_complete},
        )

    async def delete_interpretation(self, chart_id: str) -> None:
        await self.delete(chart_id)


class TransitMonthCache(ResultCache[list[TransitDayResult]]):
    """Daily transit results of one subject, one entry per calendar month."""

    def __init__(self, storage: StorageBackend, ttl_days: int = 5, clock: Callable[[], int] | None = None) -> None:
        super().__init__(
            storage,
            TRANSIT_STORE,
            ttl_ms=ttl_days * DAY_MS,
            schema_version=TRANSIT_SCHEMA_VERSION,
            payload_type=list[TransitDayResult],
            clock=clock,
        )

    async def get_month(self, subject_id: str, year: int, month: int) -> list[TransitDayResult] | None:
        """Return the cached month, or ``None`` unless every day of it is present."""
        days = await self.get(transit_month_key(subject_id, year, month))
        if days is None:
            return None
        expected = calendar.monthrange(year, month)[1]
        if len(days) < expected:
            logger.debug(
                "Cached transit month is incomplete",
                subject_id=subject_id,
                month=f"{year:04d}-{month:02d}",
                days=len(days),
                expected=expected,
            )
            return None
        return days

    async def set_month(self, subject_id: str, year: int, month: int, days: list[TransitDayResult]) -> bool:
        meta = {"subject_id": subject_id, "month": f"{year:04d}-{month:02d}", "days": len(days)}
        return await self.set(transit_month_key(subject_id, year, month), days, meta=meta)


class CacheRegistry:
    """The application's caches sharing one storage engine."""

    def __init__(
        self,
        storage: StorageBackend,
        settings: CacheSettings | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.storage = storage
        self.ephemeris = EphemerisCache(
            storage,
            ttl_days=settings.EPHEMERIS_TTL_DAYS if settings else 30,
            clock=clock,
        )
        self.interpretations = InterpretationCache(
            storage,
            ttl_days=settings.INTERPRETATION_TTL_DAYS if settings else 7,
            clock=clock,
        )
        self.transits = TransitMonthCache(
            storage,
            ttl_days=settings.TRANSIT_TTL_DAYS if settings else 5,
            clock=clock,
        )
        self.stores: dict[str, ResultCache[Any]] = {
            EPHEMERIS_STORE: self.ephemeris,
            INTERPRETATION_STORE: self.interpretations,
            TRANSIT_STORE: self.transits,
        }
        self._cleaned_up = False

    def get_store(self, name: str) -> ResultCache[Any]:
        """Return the cache named ``name``.

        Raises:
            KeyError: If no such store exists.
        """
        try:
            return self.stores[name]
        except KeyError:
            msg = f"Unknown cache store: {name}"
            raise KeyError(msg) from None

    async def clear_store(self, name: str) -> ClearCacheResult:
        success = await self.get_store(name).clear()
        return ClearCacheResult(success=success, stores={name: success})

    async def clear_all(self) -> ClearCacheResult:
        """Clear every store independently; one failure does not stop the others."""
        results = {name: await cache.clear() for name, cache in self.stores.items()}
        return ClearCacheResult(success=all(results.values()), stores=results)

    async def info(self) -> list[CacheInfo]:
        return [await cache.info() for cache in self.stores.values()]

    async def purge_expired(self) -> int:
        return sum([await cache.purge_expired() for cache in self.stores.values()])

    async def cleanup_expired(self) -> int:
        """Purge expired entries once per registry; later calls return 0."""
        if self._cleaned_up:
            return 0
        self._cleaned_up = True
        removed = await self.purge_expired()
        logger.info("Startup cache cleanup complete", removed=removed)
        return removed
