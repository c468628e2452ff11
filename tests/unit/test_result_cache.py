from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from astrocache.lib.exceptions import QuotaExceededError
from astrocache.schemas import CachedInterpretation, StoredRecord
from astrocache.services.cache import (
    DAY_MS,
    CacheRegistry,
    InterpretationCache,
    ResultCache,
)
from astrocache.services.storage import MemoryStorage, StorageBackend

if TYPE_CHECKING:
    from tests.conftest import FakeClock


class BrokenStorage(StorageBackend):
    """Engine whose every operation fails."""

    async def get(self, store: str, key: str) -> StoredRecord | None:
        raise OSError("disk on fire")

    async def put(self, record: StoredRecord) -> None:
        raise OSError("disk on fire")

    async def delete(self, store: str, key: str) -> int:
        raise OSError("disk on fire")

    async def clear(self, store: str) -> int:
        raise OSError("disk on fire")

    async def list(self, store: str) -> list[StoredRecord]:
        raise OSError("disk on fire")

    async def count(self, store: str) -> int:
        raise OSError("disk on fire")

    async def delete_oldest(self, store: str, count: int) -> int:
        raise OSError("disk on fire")


class FlakyClearStorage(MemoryStorage):
    def __init__(self, failing_store: str) -> None:
        super().__init__()
        self.failing_store = failing_store

    async def clear(self, store: str) -> int:
        if store == self.failing_store:
            raise OSError("locked")
        return await super().clear(store)


def _cache(storage: StorageBackend, clock: FakeClock, ttl_ms: int = 1000, version: int = 1) -> ResultCache[Any]:
    return ResultCache(storage, "things", ttl_ms=ttl_ms, schema_version=version, clock=clock)


async def test_set_then_get_returns_payload(storage: MemoryStorage, clock: FakeClock) -> None:
    cache = _cache(storage, clock)

    assert await cache.set("a", {"value": 1})
    assert await cache.get("a") == {"value": 1}


async def test_missing_key_is_a_miss(storage: MemoryStorage, clock: FakeClock) -> None:
    assert await _cache(storage, clock).get("nope") is None


async def test_write_replaces_previous_entry(storage: MemoryStorage, clock: FakeClock) -> None:
    cache = _cache(storage, clock)
    await cache.set("a", "first")
    clock.advance(10)
    await cache.set("a", "second")

    entry = await cache.get_entry("a")
    assert entry is not None
    assert entry.payload == "second"
    assert entry.stored_at == clock.now
    assert await storage.count("things") == 1


async def test_ttl_boundary_is_inclusive(storage: MemoryStorage, clock: FakeClock) -> None:
    cache = _cache(storage, clock, ttl_ms=DAY_MS)
    await cache.set("k", [1, 2, 3])

    clock.advance(DAY_MS)
    assert await cache.get("k") == [1, 2, 3]

    clock.advance(1)
    assert await cache.get("k") is None
    assert await storage.get("things", "k") is None


async def test_schema_version_mismatch_is_miss_and_deleted(storage: MemoryStorage, clock: FakeClock) -> None:
    await _cache(storage, clock, version=1).set("k", "old layout")

    assert await _cache(storage, clock, version=2).get("k") is None
    assert await storage.get("things", "k") is None


async def test_undecodable_payload_is_discarded(storage: MemoryStorage, clock: FakeClock) -> None:
    await storage.put(StoredRecord(store="interpretations", key="chart", payload="{not json", stored_at=clock.now, schema_version=1))
    cache = InterpretationCache(storage, clock=clock)

    assert await cache.get_interpretation("chart") is None
    assert await storage.count("interpretations") == 0


async def test_empty_key_raises(storage: MemoryStorage, clock: FakeClock) -> None:
    cache = _cache(storage, clock)
    with pytest.raises(ValueError, match="non-empty"):
        await cache.get("")
    with pytest.raises(ValueError, match="non-empty"):
        await cache.set("", 1)


async def test_storage_failures_degrade_to_sentinels(clock: FakeClock) -> None:
    cache = _cache(BrokenStorage(), clock)

    assert await cache.get("a") is None
    assert await cache.set("a", 1) is False
    assert await cache.clear() is False
    assert await cache.delete("a") is None
    info = await cache.info()
    assert info.count == 0
    assert info.entries == []
    assert await cache.purge_expired() == 0


async def test_delete_is_idempotent(storage: MemoryStorage, clock: FakeClock) -> None:
    cache = _cache(storage, clock)
    await cache.set("a", 1)

    await cache.delete("a")
    await cache.delete("a")

    assert await cache.get("a") is None


async def test_clear_only_touches_its_own_store(storage: MemoryStorage, clock: FakeClock) -> None:
    mine = ResultCache(storage, "mine", ttl_ms=1000, schema_version=1, clock=clock)
    theirs = ResultCache(storage, "theirs", ttl_ms=1000, schema_version=1, clock=clock)
    await mine.set("a", 1)
    await theirs.set("a", 2)

    assert await mine.clear()

    assert await mine.get("a") is None
    assert await theirs.get("a") == 2


async def test_info_reports_entries_with_metadata(storage: MemoryStorage, clock: FakeClock) -> None:
    cache = _cache(storage, clock)
    await cache.set("a", 1, meta={"label": "first"})
    clock.advance(5)
    await cache.set("b", 2)

    info = await cache.info()

    assert info.store == "things"
    assert info.count == 2
    assert [(e.key, e.stored_at, e.schema_version) for e in info.entries] == [
        ("a", clock.now - 5, 1),
        ("b", clock.now, 1),
    ]
    assert info.entries[0].meta == {"label": "first"}


async def test_purge_expired_removes_only_stale_entries(storage: MemoryStorage, clock: FakeClock) -> None:
    cache = _cache(storage, clock, ttl_ms=100)
    await cache.set("old", 1)
    clock.advance(150)
    await cache.set("fresh", 2)
    await storage.put(StoredRecord(store="things", key="v0", payload="3", stored_at=clock.now, schema_version=0))

    assert await cache.purge_expired() == 2
    assert [r.key for r in await storage.list("things")] == ["fresh"]


async def test_quota_recovery_evicts_oldest_then_writes(clock: FakeClock) -> None:
    storage = MemoryStorage(max_entries=15)
    cache = _cache(storage, clock, ttl_ms=DAY_MS)
    for i in range(15):
        await cache.set(f"k{i:02d}", i)
        clock.advance(1)

    assert await cache.set("new", "value")

    keys = [r.key for r in await storage.list("things")]
    assert "new" in keys
    assert len(keys) == 6
    assert "k00" not in keys
    assert "k09" not in keys
    assert "k10" in keys


async def test_quota_recovery_gives_up_when_nothing_to_evict(clock: FakeClock) -> None:
    storage = MemoryStorage(max_entries=0)

    assert await _cache(storage, clock).set("a", 1) is False


async def test_quota_recovery_is_bounded() -> None:
    class AlwaysFull(MemoryStorage):
        def __init__(self) -> None:
            super().__init__()
            self.evictions: list[int] = []

        async def put(self, record: StoredRecord) -> None:
            msg = "database or disk is full"
            raise QuotaExceededError(msg)

        async def delete_oldest(self, store: str, count: int) -> int:
            self.evictions.append(count)
            return count

    storage = AlwaysFull()
    cache = ResultCache(storage, "things", ttl_ms=1000, schema_version=1)

    assert await cache.set("a", 1) is False
    assert storage.evictions == [10, 20, 40]


async def test_registry_clear_all_is_and_of_stores(clock: FakeClock) -> None:
    storage = FlakyClearStorage(failing_store="transits")
    registry = CacheRegistry(storage, clock=clock)
    await registry.ephemeris.set("2024-01-01_to_2024-01-02", [])
    await registry.interpretations.save_chunk("natal-John-1990-01-15", "text", is_complete=True)

    result = await registry.clear_all()

    assert result.success is False
    assert result.stores == {"ephemeris": True, "interpretations": True, "transits": False}
    assert await storage.count("ephemeris") == 0
    assert await storage.count("interpretations") == 0


async def test_registry_clear_store_rejects_unknown_names(storage: MemoryStorage) -> None:
    registry = CacheRegistry(storage)

    with pytest.raises(KeyError):
        await registry.clear_store("horoscopes")


async def test_registry_startup_cleanup_runs_once(storage: MemoryStorage, clock: FakeClock) -> None:
    registry = CacheRegistry(storage, clock=clock)
    await registry.interpretations.save_chunk("chart", "text", is_complete=True)
    clock.advance(8 * DAY_MS)

    assert await registry.cleanup_expired() == 1

    await registry.interpretations.save_chunk("chart-2", "text", is_complete=True)
    clock.advance(8 * DAY_MS)
    assert await registry.cleanup_expired() == 0
    assert await storage.count("interpretations") == 1


async def test_interpretation_chunks_overwrite_one_entry(storage: MemoryStorage, clock: FakeClock) -> None:
    cache = InterpretationCache(storage, clock=clock)

    await cache.save_chunk("chart", "Hello")
    await cache.save_chunk("chart", "Hello world")
    assert await cache.get_interpretation("chart") == CachedInterpretation(content="Hello world", is_complete=False)

    await cache.save_chunk("chart", "Hello world.", is_complete=True)
    assert await cache.get_interpretation("chart") == CachedInterpretation(content="Hello world.", is_complete=True)
    assert await storage.count("interpretations") == 1

    await cache.delete_interpretation("chart")
    assert await cache.get_interpretation("chart") is None
