"""
Store Service - Query and Mutation Facade

🚀 Write-Through Cache Coordination:
Every read and write of application data goes through the store. Reads fetch
from the persistence backend and populate the entity cache; writes go to the
backend first, then update the cache and notify listeners in the same turn of
the event loop, so no reader ever sees a half-applied write.

Key Features:
- At most one in-flight backend fetch per key; concurrent readers join it
- Generation check on every fetch result; stale results never overwrite
  fresher values
- Inserts invalidate the whole table; updates and deletes rewrite the row
  and drop the table's cached queries
- Backend failures surface to the caller as ``BackendUnavailableError`` and
  leave cached values untouched
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Dict, Mapping, Optional, Tuple, TypeVar

from ..persistence.backends.interface import Match, PersistenceBackend, Row, SelectOptions
from ..persistence.cache.entity_cache import EntityCache
from ..persistence.cache.keys import (
    NOT_FOUND, CacheEntry, Record, TableKey, freeze_record, thaw_record
)
from ..persistence.errors import BackendUnavailableError, NotFoundError, StoreError
from ..reactivity.subscriptions import Listener, Unsubscribe

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class CacheMetrics:
    """Counters for store activity"""
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    coalesced: int = 0
    stale_discards: int = 0
    writes: int = 0
    failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / max(self.hits + self.misses, 1),
            "fetches": self.fetches,
            "coalesced": self.coalesced,
            "stale_discards": self.stale_discards,
            "writes": self.writes,
            "failures": self.failures
        }


class Store:
    """
    Facade over the persistence backend, the entity cache and its registry.

    The store is the only writer of the entity cache. Bindings read through
    ``peek``/``ensure_loaded`` and register interest through ``subscribe``.
    """

    def __init__(self, backend: PersistenceBackend, cache: EntityCache):
        self._backend = backend
        self._cache = cache
        self._inflight: Dict[TableKey, asyncio.Task] = {}
        self.metrics = CacheMetrics()

    @property
    def backend(self) -> PersistenceBackend:
        return self._backend

    @property
    def cache(self) -> EntityCache:
        return self._cache

    # Cache access for bindings
    def peek(self, key: TableKey) -> Optional[CacheEntry]:
        """Synchronous cache read; never touches the backend"""
        return self._cache.get(key)

    def subscribe(self, key: TableKey, listener: Listener) -> Unsubscribe:
        return self._cache.registry.subscribe(key, listener)

    def in_flight(self, key: TableKey) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    async def ensure_loaded(self, key: TableKey) -> CacheEntry:
        """Return the cached entry for ``key``, fetching it on a miss"""
        entry = self._cache.get(key)
        if entry is not None:
            self.metrics.hits += 1
            return entry
        self.metrics.misses += 1
        return await self.reload(key)

    async def reload(self, key: TableKey) -> CacheEntry:
        """Fetch ``key`` from the backend, joining an in-flight fetch if any"""
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(self._fetch(key))
            self._inflight[key] = task
            task.add_done_callback(lambda done, key=key: self._forget(key, done))
        else:
            self.metrics.coalesced += 1
            logger.debug(f"Joined in-flight fetch for {key}")
        # Shielded: one caller giving up must not cancel the shared fetch
        return await asyncio.shield(task)

    def _forget(self, key: TableKey, task: asyncio.Task):
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # Mark retrieved; every waiter already received it
            task.exception()

    async def _fetch(self, key: TableKey) -> CacheEntry:
        while True:
            generation = self._cache.begin_fetch(key)
            self.metrics.fetches += 1
            try:
                value = await self._read(key)
                if self._cache.generation(key) == generation:
                    self._cache.put(key, value)
                    return self._cache.get(key)
            finally:
                self._cache.end_fetch(key)

            self.metrics.stale_discards += 1
            logger.debug(f"Discarded stale fetch result for {key}")
            current = self._cache.get(key)
            if current is not None:
                return current
            # Invalidated while in flight and nothing fresher cached: fetch again

    async def _read(self, key: TableKey):
        if key.is_query:
            rows = await self._call("query", key.table,
                                    self._backend.query(key.table, key.match, key.options))
            return tuple(freeze_record(row) for row in rows)
        row = await self._call("get_by_id", key.table,
                               self._backend.get_by_id(key.table, key.record_id))
        return freeze_record(row) if row is not None else NOT_FOUND

    async def _call(self, operation: str, table: str, request: Awaitable[T]) -> T:
        try:
            return await request
        except StoreError:
            self.metrics.failures += 1
            raise
        except Exception as e:
            self.metrics.failures += 1
            raise BackendUnavailableError(
                f"{operation} on {table} failed: {e}", table=table, operation=operation
            ) from e

    # Reads
    async def select_first_async(self, table: str, record_id: str) -> Optional[Record]:
        """
        Fetch one row by id.

        Returns:
            The row, or None if the backend has no such row
        """
        entry = await self.reload(TableKey.for_id(table, record_id))
        return None if entry.is_not_found else entry.value

    async def select_matches_async(self, table: str, match: Match,
                                   options: Optional[SelectOptions] = None) -> Tuple[Record, ...]:
        """Fetch every row matching all field/value pairs (possibly none)"""
        entry = await self.reload(TableKey.for_match(table, match, options))
        return entry.value

    async def select_first_matches_async(self, table: str, match: Match,
                                         options: Optional[SelectOptions] = None) -> Optional[Record]:
        """First row matching ``match``, or None"""
        options = options or SelectOptions()
        if options.limit is None:
            options = options.with_limit(1)
        rows = await self.select_matches_async(table, match, options)
        return rows[0] if rows else None

    # Writes
    async def insert_async(self, table: str, value: Mapping[str, Any]) -> Record:
        """
        Insert a row; the backend assigns ``id``/``created_at`` when absent.

        Every cached key of the table is invalidated, since the new row may
        belong to any cached query.
        """
        row: Row = await self._call("insert", table, self._backend.insert(table, thaw_record(value)))
        record = freeze_record(row)
        self.metrics.writes += 1
        self._cache.apply_insert(TableKey.for_id(table, record["id"]), record)
        return record

    async def update_async(self, table: str, record_id: str, partial: Mapping[str, Any]) -> Record:
        """
        Merge ``partial`` into an existing row.

        Raises:
            NotFoundError: if no row has ``record_id``; the cache then records
                the row as not found
        """
        key = TableKey.for_id(table, record_id)
        row = await self._call("update", table, self._backend.update(table, record_id, thaw_record(partial)))
        self.metrics.writes += 1
        if row is None:
            self._cache.apply_write(key, NOT_FOUND)
            raise NotFoundError(f"No {table} row with id {record_id}", table=table, record_id=record_id)
        record = freeze_record(row)
        self._cache.apply_write(key, record)
        return record

    async def delete_async(self, table: str, record_id: str) -> Optional[Record]:
        """
        Delete a row.

        Returns:
            The row as it was before deletion, or None if it did not exist
        """
        key = TableKey.for_id(table, record_id)
        row = await self._call("delete", table, self._backend.delete(table, record_id))
        self.metrics.writes += 1
        self._cache.apply_write(key, NOT_FOUND)
        return freeze_record(row) if row is not None else None

    def get_metrics(self) -> Dict[str, Any]:
        metrics = self.metrics.to_dict()
        metrics.update({
            "cached_entries": len(self._cache),
            "in_flight": sum(1 for task in self._inflight.values() if not task.done()),
            "tracked_keys": self._cache.tracked_count(),
            "registry": self._cache.registry.get_metrics()
        })
        return metrics


__all__ = ["Store", "CacheMetrics"]
