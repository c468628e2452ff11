"""Key-value storage engines backing the local result cache.

Every engine stores :class:`~astrocache.schemas.StoredRecord` rows grouped by
store name, so clearing or expiring one store never touches another. Engines
have an explicit ``open()`` / ``close()`` lifecycle and are passed to the
caches that use them, which keeps tests isolated from each other.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlspec.adapters.aiosqlite import AiosqliteConfig

from astrocache.lib.exceptions import QuotaExceededError, is_quota_exceeded_error
from astrocache.schemas import StoredRecord

if TYPE_CHECKING:
    from types import TracebackType

    from typing_extensions import Self

logger = structlog.get_logger()

__all__ = (
    "MemoryStorage",
    "SQLiteStorage",
    "StorageBackend",
)


class StorageBackend(ABC):
    """Async key-value engine with one namespace per store."""

    async def open(self) -> None:  # noqa: B027
        """Prepare the engine for use."""

    async def close(self) -> None:  # noqa: B027
        """Release the engine's resources."""

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @abstractmethod
    async def get(self, store: str, key: str) -> StoredRecord | None:
        """Return the record for ``key`` or ``None``."""

    @abstractmethod
    async def put(self, record: StoredRecord) -> None:
        """Insert or replace the record for ``(record.store, record.key)``."""

    @abstractmethod
    async def delete(self, store: str, key: str) -> int:
        """Delete one record, returning the number of rows removed."""

    @abstractmethod
    async def clear(self, store: str) -> int:
        """Delete every record of ``store``."""

    @abstractmethod
    async def list(self, store: str) -> list[StoredRecord]:
        """Return every record of ``store``, oldest first."""

    @abstractmethod
    async def count(self, store: str) -> int:
        """Number of records in ``store``."""

    @abstractmethod
    async def delete_oldest(self, store: str, count: int) -> int:
        """Delete up to ``count`` records of ``store`` with the smallest ``stored_at``."""


class MemoryStorage(StorageBackend):
    """In-process engine.

    Args:
        max_entries: Total capacity across all stores; inserting a new key
            beyond it raises :class:`QuotaExceededError`.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        self.max_entries = max_entries
        self._stores: dict[str, dict[str, StoredRecord]] = {}

    def _total(self) -> int:
        return sum(len(records) for records in self._stores.values())

    async def get(self, store: str, key: str) -> StoredRecord | None:
        return self._stores.get(store, {}).get(key)

    async def put(self, record: StoredRecord) -> None:
        records = self._stores.setdefault(record.store, {})
        if self.max_entries is not None and record.key not in records and self._total() >= self.max_entries:
            msg = f"Storage quota of {self.max_entries} entries exceeded"
            raise QuotaExceededError(msg)
        records[record.key] = record

    async def delete(self, store: str, key: str) -> int:
        return 1 if self._stores.get(store, {}).pop(key, None) is not None else 0

    async def clear(self, store: str) -> int:
        return len(self._stores.pop(store, {}))

    async def list(self, store: str) -> list[StoredRecord]:
        return sorted(self._stores.get(store, {}).values(), key=lambda r: r.stored_at)

    async def count(self, store: str) -> int:
        return len(self._stores.get(store, {}))

    async def delete_oldest(self, store: str, count: int) -> int:
        oldest = (await self.list(store))[:count]
        for record in oldest:
            await self.delete(store, record.key)
        return len(oldest)


class SQLiteStorage(StorageBackend):
    """SQLite file engine driven through SQLSpec's aiosqlite adapter.

    Connections run in autocommit mode; concurrent operations are serialised
    by SQLite itself.
    """

    def __init__(self, database: Path | str) -> None:
        self.database = Path(database)
        self.db_config = AiosqliteConfig(
            pool_config={
                "database": str(self.database),
                "isolation_level": None,
            },
        )

    async def open(self) -> None:
        self.database.parent.mkdir(parents=True, exist_ok=True)
        async with self.db_config.provide_session() as session:
            await session.execute(
                """
                CREATE TABLE IF NOT EXISTS cache_entry (
                    store TEXT NOT NULL,
                    cache_key TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    meta TEXT NOT NULL DEFAULT '{}',
                    stored_at INTEGER NOT NULL,
                    schema_version INTEGER NOT NULL,
                    PRIMARY KEY (store, cache_key)
                )
                """,
            )
            await session.execute(
                "CREATE INDEX IF NOT EXISTS ix_cache_entry_stored_at ON cache_entry (store, stored_at)",
            )
        logger.debug("Cache storage opened", database=str(self.database))

    async def close(self) -> None:
        await self.db_config.close_pool()
        logger.debug("Cache storage closed", database=str(self.database))

    @staticmethod
    def _to_record(row: dict[str, Any]) -> StoredRecord:
        return StoredRecord(
            store=row["store"],
            key=row["cache_key"],
            payload=row["payload"],
            stored_at=int(row["stored_at"]),
            schema_version=int(row["schema_version"]),
            meta=json.loads(row["meta"]) if row["meta"] else {},
        )

    async def get(self, store: str, key: str) -> StoredRecord | None:
        async with self.db_config.provide_session() as session:
            row = await session.select_one_or_none(
                """
                SELECT store, cache_key, payload, meta, stored_at, schema_version
                FROM cache_entry
                WHERE store = :store AND cache_key = :cache_key
                """,
                store=store,
                cache_key=key,
            )
        return self._to_record(row) if row else None

    async def put(self, record: StoredRecord) -> None:
        try:
            async with self.db_config.provide_session() as session:
                await session.execute(
                    """
                    INSERT INTO cache_entry (store, cache_key, payload, meta, stored_at, schema_version)
                    VALUES (:store, :cache_key, :payload, :meta, :stored_at, :schema_version)
                    ON CONFLICT (store, cache_key) DO UPDATE SET
                        payload = excluded.payload,
                        meta = excluded.meta,
                        stored_at = excluded.stored_at,
                        schema_version = excluded.schema_version
                    """,
                    store=record.store,
                    cache_key=record.key,
                    payload=record.payload,
                    meta=json.dumps(record.meta),
                    stored_at=record.stored_at,
                    schema_version=record.schema_version,
                )
        except Exception as e:
            if is_quota_exceeded_error(e):
                raise QuotaExceededError(str(e)) from e
            raise

    async def delete(self, store: str, key: str) -> int:
        async with self.db_config.provide_session() as session:
            result = await session.execute(
                "DELETE FROM cache_entry WHERE store = :store AND cache_key = :cache_key",
                store=store,
                cache_key=key,
            )
        return result.rows_affected

    async def clear(self, store: str) -> int:
        async with self.db_config.provide_session() as session:
            result = await session.execute("DELETE FROM cache_entry WHERE store = :store", store=store)
        return result.rows_affected

    async def list(self, store: str) -> list[StoredRecord]:
        async with self.db_config.provide_session() as session:
            rows = await session.select(
                """
                SELECT store, cache_key, payload, meta, stored_at, schema_version
                FROM cache_entry
                WHERE store = :store
                ORDER BY stored_at ASC
                """,
                store=store,
            )
        return [self._to_record(row) for row in rows]

    async def count(self, store: str) -> int:
        async with self.db_config.provide_session() as session:
            value = await session.select_value(
                "SELECT COUNT(*) FROM cache_entry WHERE store = :store",
                store=store,
            )
        return int(value or 0)

    async def delete_oldest(self, store: str, count: int) -> int:
        async with self.db_config.provide_session() as session:
            result = await session.execute(
                """
                DELETE FROM cache_entry
                WHERE store = :store AND cache_key IN (
                    SELECT cache_key FROM cache_entry
                    WHERE store = :store
                    ORDER BY stored_at ASC
                    LIMIT :limit
                )
                """,
                store=store,
                limit=count,
            )
        deleted = result.rows_affected
        if deleted:
            logger.info("Deleted oldest cache entries to free space", store=store, count=deleted)
        return deleted
