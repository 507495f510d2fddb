"""
Memory Backends - In-Process Persistence and Object Storage

🧠 Development and Test Stand-ins:
In-memory implementations of the two external contracts. Rows are validated
against the table schemas on every write, copies are handed out on every read,
and every call is a real suspension point so concurrent callers interleave the
way they would against a remote service.

Testing hooks:
- ``calls`` counts backend operations per kind
- ``fail_next(op, exc)`` makes the next call of a kind raise
- ``hold_reads()`` parks reads until the returned event is set
"""

import asyncio
import copy
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Type

import pydantic

from ..errors import ObjectNotFoundError, ValidationError
from ..schema import TABLE_SCHEMAS, TableRow, new_id, utc_now_iso
from .interface import (
    Match, ObjectStorageBackend, PersistenceBackend, Row, SelectOptions, SignedUrl
)

logger = logging.getLogger(__name__)

_MULTI_VALUE_TYPES = (list, tuple, set, frozenset)


@dataclass
class BackendMetrics:
    """Call counters collected by the memory backends"""
    calls: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    failures: int = 0

    def record(self, operation: str):
        self.calls[operation] += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calls": dict(self.calls),
            "total_calls": sum(self.calls.values()),
            "failures": self.failures
        }


def row_matches(row: Mapping[str, Any], match: Match) -> bool:
    """Exact-equality match; a multi-valued match value means "any of"."""
    for field_name, expected in match.items():
        actual = row.get(field_name)
        if isinstance(expected, _MULTI_VALUE_TYPES):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class MemoryBackend(PersistenceBackend):
    """
    In-memory tabular backend.

    Tables are created on first use. Rows of tables with a registered schema
    are validated through pydantic; rows of other tables only get ``id`` and
    ``created_at`` filled in.
    """

    def __init__(self,
                 schemas: Optional[Mapping[str, Type[TableRow]]] = None,
                 latency: float = 0.0):
        self._tables: Dict[str, Dict[str, Row]] = defaultdict(dict)
        self._schemas: Dict[str, Type[TableRow]] = dict(TABLE_SCHEMAS if schemas is None else schemas)
        self._failures: Dict[str, List[Exception]] = defaultdict(list)
        self._read_gate: Optional[asyncio.Event] = None
        self.latency = latency
        self.metrics = BackendMetrics()

    @property
    def calls(self) -> Dict[str, int]:
        return self.metrics.calls

    # Testing hooks
    def fail_next(self, operation: str, exc: Optional[Exception] = None):
        """Make the next ``operation`` call raise ``exc``"""
        self._failures[operation].append(exc or ConnectionError(f"{operation} failed"))

    def hold_reads(self) -> asyncio.Event:
        """Park every read until the returned event is set"""
        gate = asyncio.Event()
        self._read_gate = gate
        return gate

    def seed(self, table: str, rows: Iterable[Row]) -> List[Row]:
        """Store rows directly, bypassing call accounting"""
        stored = []
        for row in rows:
            materialised = self._materialise(table, copy.deepcopy(dict(row)))
            self._tables[table][materialised["id"]] = materialised
            stored.append(copy.deepcopy(materialised))
        return stored

    def rows(self, table: str) -> List[Row]:
        return [copy.deepcopy(row) for row in self._tables[table].values()]

    async def _roundtrip(self, operation: str, read: bool = False):
        self.metrics.record(operation)
        await asyncio.sleep(self.latency)
        if read and self._read_gate is not None:
            await self._read_gate.wait()
        pending = self._failures.get(operation)
        if pending:
            self.metrics.failures += 1
            raise pending.pop(0)

    def _materialise(self, table: str, row: Row) -> Row:
        schema = self._schemas.get(table)
        if schema is None:
            row.setdefault("id", new_id())
            row.setdefault("created_at", utc_now_iso())
            return row
        try:
            return schema.model_validate(row).model_dump(mode="json")
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid {table} row: {e}") from e

    # PersistenceBackend
    # Reads snapshot their result before the round trip, like a response
    # already produced by the server and still on the wire.
    async def get_by_id(self, table: str, record_id: str) -> Optional[Row]:
        row = self._tables[table].get(record_id)
        snapshot = copy.deepcopy(row) if row is not None else None
        await self._roundtrip("get_by_id", read=True)
        return snapshot

    async def query(self, table: str, match: Match, options: SelectOptions) -> List[Row]:
        snapshot = self._select(table, match, options)
        await self._roundtrip("query", read=True)
        return snapshot

    def _select(self, table: str, match: Match, options: SelectOptions) -> List[Row]:
        rows = [row for row in self._tables[table].values() if row_matches(row, match)]

        if options.order_by:
            order_by = options.order_by
            # Missing values sort first in either direction
            missing = [row for row in rows if row.get(order_by) is None]
            present = [row for row in rows if row.get(order_by) is not None]
            present.sort(key=lambda row: row[order_by], reverse=options.order_by_desc)
            rows = missing + present

        start = options.offset
        end = start + options.limit if options.limit is not None else None
        return [copy.deepcopy(row) for row in rows[start:end]]

    async def insert(self, table: str, row: Row) -> Row:
        await self._roundtrip("insert")
        materialised = self._materialise(table, copy.deepcopy(dict(row)))
        self._tables[table][materialised["id"]] = materialised
        logger.debug(f"Inserted {table}/{materialised['id']}")
        return copy.deepcopy(materialised)

    async def update(self, table: str, record_id: str, partial: Row) -> Optional[Row]:
        await self._roundtrip("update")
        existing = self._tables[table].get(record_id)
        if existing is None:
            return None
        merged = {**copy.deepcopy(existing), **copy.deepcopy(dict(partial)), "id": record_id}
        materialised = self._materialise(table, merged)
        self._tables[table][record_id] = materialised
        return copy.deepcopy(materialised)

    async def delete(self, table: str, record_id: str) -> Optional[Row]:
        await self._roundtrip("delete")
        return self._tables[table].pop(record_id, None)


class MemoryObjectStorage(ObjectStorageBackend):
    """In-memory signed URL issuer"""

    def __init__(self,
                 objects: Optional[Iterable[str]] = None,
                 url_ttl: timedelta = timedelta(hours=1),
                 base_url: str = "memory://storage",
                 clock: Callable[[], datetime] = datetime.now):
        self._objects = set(objects or ())
        self._failures: List[Exception] = []
        self.url_ttl = url_ttl
        self.base_url = base_url.rstrip("/")
        self.clock = clock
        self.metrics = BackendMetrics()

    @property
    def resolve_calls(self) -> int:
        return self.metrics.calls["resolve_signed_url"]

    def put_object(self, path: str):
        self._objects.add(path)

    def remove_object(self, path: str):
        self._objects.discard(path)

    def fail_next(self, exc: Optional[Exception] = None):
        self._failures.append(exc or ConnectionError("storage unavailable"))

    async def resolve_signed_url(self, path: str) -> SignedUrl:
        self.metrics.record("resolve_signed_url")
        await asyncio.sleep(0)
        if self._failures:
            self.metrics.failures += 1
            raise self._failures.pop(0)
        if path not in self._objects:
            raise ObjectNotFoundError(f"No object at {path}")
        token = uuid.uuid4().hex
        return SignedUrl(
            url=f"{self.base_url}/{path}?token={token}",
            expires_at=self.clock() + self.url_ttl
        )


__all__ = ["MemoryBackend", "MemoryObjectStorage", "BackendMetrics", "row_matches"]
