"""
Backends - External Collaborator Contracts and In-Memory Implementations
"""

from .interface import (
    Match, ObjectStorageBackend, PersistenceBackend, Row, SelectOptions, SignedUrl
)
from .memory import BackendMetrics, MemoryBackend, MemoryObjectStorage, row_matches

__all__ = [
    "Match", "Row", "SelectOptions", "SignedUrl",
    "PersistenceBackend", "ObjectStorageBackend",
    "MemoryBackend", "MemoryObjectStorage", "BackendMetrics", "row_matches"
]
