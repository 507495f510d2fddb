"""
Entity Cache - Last-Known Values with Generations

🗂️ Process-Wide Read Cache:
Keeps the last known value of every by-id and match-query key. Every write
touching a key stamps it with the next value of one cache-wide counter (its
generation). A fetch registers with ``begin_fetch`` and remembers the stamp it
started at; if the stamp moved before the fetch resolved, its result is stale
and is dropped by the store.

Stamps are only kept while a key has an entry or a fetch in flight. Since the
counter never repeats, a key that was forgotten and later cached again can
never be confused with its earlier value.

Every mutation completes before listeners are notified, so a listener always
observes the finished write.
"""

import itertools
import logging
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Set

from .keys import CacheEntry, CachedValue, TableKey
from ...reactivity.subscriptions import SubscriptionRegistry

logger = logging.getLogger(__name__)


class EntityCache:
    """
    In-memory keyed store of entity values and query results.

    Absence of an entry means "not loaded"; an entry holding ``NOT_FOUND``
    means "loaded, no such row".
    """

    def __init__(self, registry: SubscriptionRegistry, clock: Callable[[], datetime] = datetime.now):
        self._registry = registry
        self._clock = clock
        self._entries: Dict[TableKey, CacheEntry] = {}
        self._generations: Dict[TableKey, int] = {}
        self._fetching: Dict[TableKey, int] = defaultdict(int)
        self._by_table: Dict[str, Set[TableKey]] = defaultdict(set)
        self._counter = itertools.count(1)

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: TableKey) -> bool:
        return key in self._entries

    def get(self, key: TableKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def generation(self, key: TableKey) -> int:
        """Stamp of the last write to ``key``; 0 when the key is not tracked"""
        return self._generations.get(key, 0)

    def keys(self, table: Optional[str] = None) -> List[TableKey]:
        return [key for key in self._entries if table is None or key.table == table]

    def tracked_count(self) -> int:
        """Number of keys holding a generation (cached or being fetched)"""
        return len(self._generations)

    # Fetch registration
    def begin_fetch(self, key: TableKey) -> int:
        """Track ``key`` for the duration of a fetch; returns the starting stamp"""
        self._fetching[key] += 1
        self._track(key)
        return self._generations[key]

    def end_fetch(self, key: TableKey):
        remaining = self._fetching[key] - 1
        if remaining > 0:
            self._fetching[key] = remaining
        else:
            del self._fetching[key]
        self._prune(key)

    def _track(self, key: TableKey):
        if key not in self._generations:
            self._generations[key] = 0
            self._by_table[key.table].add(key)

    def _prune(self, key: TableKey):
        if key in self._entries or key in self._fetching or key not in self._generations:
            return
        del self._generations[key]
        table_keys = self._by_table[key.table]
        table_keys.discard(key)
        if not table_keys:
            del self._by_table[key.table]

    def _bump(self, key: TableKey) -> int:
        self._track(key)
        self._generations[key] = next(self._counter)
        return self._generations[key]

    def _store(self, key: TableKey, value: CachedValue):
        generation = self._bump(key)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            last_fetched_at=self._clock(),
            generation=generation
        )

    def _drop(self, keys: Iterable[TableKey]):
        """Remove entries and outdate in-flight fetches of ``keys``"""
        for key in list(keys):
            self._entries.pop(key, None)
            self._bump(key)
            self._prune(key)

    def _table_keys(self, table: str, queries_only: bool = False) -> List[TableKey]:
        return [key for key in self._by_table.get(table, ()) if key.is_query or not queries_only]

    # Writes
    def put(self, key: TableKey, value: CachedValue):
        """Store a value and notify the key's listeners"""
        self._store(key, value)
        self._registry.publish(key)

    def invalidate(self, key: TableKey):
        """Forget a key's value and notify its listeners"""
        self._drop([key])
        self._registry.publish(key)

    def invalidate_table(self, table: str):
        """Forget every value of ``table`` and notify every listener of the table"""
        affected = self._table_keys(table)
        self._drop(affected)
        logger.debug(f"Invalidated {len(affected)} keys of table {table}")
        self._registry.publish_table(table)

    def apply_insert(self, key: TableKey, value: CachedValue):
        """
        Record a newly inserted row.

        A new row may satisfy any cached query, and queries cannot be
        re-evaluated locally, so every other key of the table is dropped. The
        row itself is cached before the single table-wide notification.
        """
        if key.is_query:
            raise ValueError("apply_insert takes a by-id key")
        affected = [k for k in self._table_keys(key.table) if k != key]
        self._drop(affected)
        self._store(key, value)
        logger.debug(f"Inserted {key}; dropped {len(affected)} keys of table {key.table}")
        self._registry.publish_table(key.table)

    def apply_write(self, key: TableKey, value: CachedValue):
        """
        Record the outcome of an update or delete of one row.

        Query entries of the same table may still hold the previous snapshot of
        the row, so they are dropped along with it.
        """
        if key.is_query:
            raise ValueError("apply_write takes a by-id key")
        self._store(key, value)
        self._drop(self._table_keys(key.table, queries_only=True))
        self._registry.publish(key)

    def clear(self, tables: Optional[Iterable[str]] = None):
        """Forget all values (or those of ``tables``) without notifying"""
        wanted = list(self._by_table) if tables is None else list(tables)
        for table in wanted:
            self._drop(self._table_keys(table))


__all__ = ["EntityCache"]
