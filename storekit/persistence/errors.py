"""
Store Errors

Error taxonomy for the data-access layer. "Not found" on read paths is never
an exception; it is reported as ``None`` or the ``NOT_FOUND`` cache sentinel.
"""

from typing import Optional


class StoreError(Exception):
    """Base exception for store operations"""
    pass


class BackendUnavailableError(StoreError):
    """Raised when the persistence or storage backend cannot serve a request"""

    def __init__(self, message: str, table: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.table = table
        self.operation = operation


class WriteConflictError(StoreError):
    """Raised when the target of an update or delete vanished"""

    def __init__(self, message: str, table: Optional[str] = None, record_id: Optional[str] = None):
        super().__init__(message)
        self.table = table
        self.record_id = record_id


class NotFoundError(WriteConflictError):
    """Raised by updates addressed to a row that does not exist"""
    pass


class ValidationError(StoreError):
    """Raised when a row fails its table schema at the backend boundary"""
    pass


class ObjectNotFoundError(StoreError):
    """Raised by object storage when no object exists at a path"""
    pass


__all__ = [
    "StoreError", "BackendUnavailableError", "WriteConflictError",
    "NotFoundError", "ValidationError", "ObjectNotFoundError"
]
