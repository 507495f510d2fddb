"""
Persistence - Backends, Schemas and the Entity Cache

💾 Data Layer:
- backends/: contracts of the remote data and storage services, plus
  in-memory implementations
- cache/: process-wide entity cache with per-key generations
- schema.py: row shapes validated at the backend boundary
- errors.py: error taxonomy
"""

from .errors import (
    BackendUnavailableError, NotFoundError, ObjectNotFoundError, StoreError,
    ValidationError, WriteConflictError
)
from .backends import (
    MemoryBackend, MemoryObjectStorage, ObjectStorageBackend, PersistenceBackend,
    SelectOptions, SignedUrl
)
from .cache import NOT_FOUND, CacheEntry, EntityCache, TableKey, freeze_record
from .schema import TABLE_SCHEMAS, TENANT_ROOTS

__all__ = [
    "StoreError", "BackendUnavailableError", "WriteConflictError", "NotFoundError",
    "ValidationError", "ObjectNotFoundError",
    "PersistenceBackend", "ObjectStorageBackend", "SelectOptions", "SignedUrl",
    "MemoryBackend", "MemoryObjectStorage",
    "EntityCache", "TableKey", "CacheEntry", "NOT_FOUND", "freeze_record",
    "TABLE_SCHEMAS", "TENANT_ROOTS"
]
