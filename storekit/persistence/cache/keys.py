"""
Cache Keys and Entries

A ``TableKey`` names one cached read: either a single row by id, or a match
query with its paging/ordering options. Match objects are normalised so that
the same field/value pairs in any order produce equal, equally hashed keys.
"""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ..backends.interface import Match, SelectOptions

Record = Mapping[str, Any]


class _NotFound:
    """Sentinel for "looked up, no such row"; distinct from "not loaded yet"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "NOT_FOUND"

    def __bool__(self):
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


NOT_FOUND = _NotFound()

CachedValue = Union[Record, Tuple[Record, ...], _NotFound]


def _canonical_value(value: Any) -> str:
    if isinstance(value, (set, frozenset)):
        value = sorted(value, key=repr)
    return json.dumps(value, sort_keys=True, default=str)


def canonical_match(match: Match) -> Tuple[Tuple[str, str], ...]:
    """Order-independent serialised form of a match object"""
    return tuple(sorted((str(name), _canonical_value(value)) for name, value in match.items()))


@dataclass(frozen=True)
class TableKey:
    """
    Identity of a cached read.

    By-id keys carry ``record_id``; query keys carry the canonical match and
    their ``SelectOptions``. Only the canonical form takes part in equality.
    """
    table: str
    record_id: Optional[str] = None
    match_items: Tuple[Tuple[str, str], ...] = ()
    options: Optional[SelectOptions] = None
    raw_match: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False, repr=False)

    @classmethod
    def for_id(cls, table: str, record_id: str) -> 'TableKey':
        if not record_id:
            raise ValueError("record_id is required for a by-id key")
        return cls(table=table, record_id=str(record_id))

    @classmethod
    def for_match(cls, table: str, match: Match,
                  options: Optional[SelectOptions] = None) -> 'TableKey':
        return cls(
            table=table,
            match_items=canonical_match(match),
            options=options or SelectOptions(),
            raw_match=copy.deepcopy(dict(match))
        )

    @property
    def is_query(self) -> bool:
        return self.record_id is None

    @property
    def match(self) -> Dict[str, Any]:
        """The match object as given (a copy)"""
        return copy.deepcopy(self.raw_match) if self.raw_match is not None else {}

    def __str__(self):
        if not self.is_query:
            return f"{self.table}/{self.record_id}"
        pairs = ",".join(f"{name}={value}" for name, value in self.match_items)
        return f"{self.table}?{pairs}"


@dataclass(frozen=True)
class CacheEntry:
    """Last known value of a key"""
    key: TableKey
    value: CachedValue
    last_fetched_at: datetime
    generation: int

    @property
    def is_not_found(self) -> bool:
        return self.value is NOT_FOUND


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({name: _freeze(item) for name, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(value)
    return copy.deepcopy(value)


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {name: _thaw(item) for name, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    if isinstance(value, frozenset):
        return set(value)
    return copy.deepcopy(value)


def freeze_record(row: Mapping[str, Any]) -> Record:
    """
    Immutable snapshot of a row.

    Nested JSON columns are frozen too: mappings become read-only proxies and
    arrays become tuples.
    """
    return _freeze(row)


def thaw_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Plain mutable copy of a record (or partial row), e.g. to send to a backend"""
    return _thaw(record)


__all__ = [
    "TableKey", "CacheEntry", "NOT_FOUND", "Record", "CachedValue",
    "canonical_match", "freeze_record", "thaw_record"
]
