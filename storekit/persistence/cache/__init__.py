"""
Caching - Entity Cache and Cache Keys
"""

from .keys import (
    NOT_FOUND, CacheEntry, CachedValue, Record, TableKey, canonical_match, freeze_record,
    thaw_record
)
from .entity_cache import EntityCache

__all__ = [
    "EntityCache", "TableKey", "CacheEntry", "NOT_FOUND", "Record",
    "CachedValue", "canonical_match", "freeze_record", "thaw_record"
]
