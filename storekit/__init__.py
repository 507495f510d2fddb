"""
storekit - Reactive Data Access for Multi-Tenant CRM Screens

⭐ One Cache, Many Components ⭐

Screens read remote rows and queries through bindings that share one
process-wide entity cache. Writes go through the store, which updates the
cache and notifies every mounted binding, so components stay consistent
without refetching. A companion file store caches signed URLs.

🗂️ persistence/     - backends, schemas, entity cache
🔄 reactivity/      - subscription registry and bindings
🚀 services/        - store and file store
🔧 infrastructure/  - configuration and service setup

Quick Start:
    from storekit import configure_storekit, ItemBinding

    services = configure_storekit()
    profile = ItemBinding(services.store, "profile", profile_id, on_change=render)
    profile.mount()
    await services.store.update_async("profile", profile_id, {"email": "a@b.com"})
    # profile.value now holds the new email
"""

from .persistence import (
    NOT_FOUND, BackendUnavailableError, CacheEntry, EntityCache, MemoryBackend,
    MemoryObjectStorage, NotFoundError, ObjectNotFoundError, ObjectStorageBackend,
    PersistenceBackend, SelectOptions, SignedUrl, StoreError, TableKey,
    ValidationError, WriteConflictError
)
from .reactivity import (
    BindingOptions, FileUrlBinding, FirstMatchingBinding, ItemBinding, LoadState,
    MatchingBinding, SubscriptionRegistry
)
from .services import FileStore, Store
from .infrastructure import (
    Environment, StoreConfig, StoreServices, configure_storekit, get_config,
    get_file_store, get_services, get_store, set_config, shutdown_storekit
)

__version__ = "0.1.0"

__all__ = [
    # Services
    "Store", "FileStore", "EntityCache", "SubscriptionRegistry",

    # Bindings
    "ItemBinding", "MatchingBinding", "FirstMatchingBinding", "FileUrlBinding",
    "BindingOptions", "LoadState",

    # Keys and values
    "TableKey", "CacheEntry", "NOT_FOUND", "SelectOptions", "SignedUrl",

    # Backends
    "PersistenceBackend", "ObjectStorageBackend", "MemoryBackend", "MemoryObjectStorage",

    # Errors
    "StoreError", "BackendUnavailableError", "WriteConflictError", "NotFoundError",
    "ValidationError", "ObjectNotFoundError",

    # Configuration
    "StoreConfig", "Environment", "get_config", "set_config",
    "StoreServices", "configure_storekit", "get_services", "get_store",
    "get_file_store", "shutdown_storekit"
]
