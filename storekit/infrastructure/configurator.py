"""
storekit Configurator

🚀 Process-Wide Service Setup:
Builds the subscription registry, entity cache, store and file store once at
startup and keeps them as the current services. Callers receive the services
explicitly (``configure_storekit`` returns them) or look them up with
``get_services``; nothing else holds module-level cache state.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from ..persistence.backends.interface import ObjectStorageBackend, PersistenceBackend
from ..persistence.backends.memory import MemoryBackend, MemoryObjectStorage
from ..persistence.cache.entity_cache import EntityCache
from ..reactivity.subscriptions import SubscriptionRegistry
from ..services.file_store import FileStore
from ..services.store import Store
from .configuration import StoreConfig, get_config

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when services are requested before configuration or misconfigured"""
    pass


@dataclass
class StoreServices:
    """The process-wide singletons"""
    config: StoreConfig
    registry: SubscriptionRegistry
    cache: EntityCache
    store: Store
    file_store: FileStore

    def switch_tenant(self):
        """Drop every cached value so no key of the previous account is served"""
        self.cache.clear()
        self.file_store.clear()
        logger.info("Caches cleared for tenant switch")

    def shutdown(self):
        self.cache.clear()
        self.registry.clear()
        self.file_store.clear()


def _create_backend(config: StoreConfig) -> PersistenceBackend:
    if config.backend.implementation == "memory":
        return MemoryBackend(latency=config.backend.latency_seconds)
    raise ConfigurationError(
        f"Unsupported persistence backend: {config.backend.implementation}; pass one explicitly"
    )


def _create_storage(config: StoreConfig) -> ObjectStorageBackend:
    if config.backend.storage_implementation == "memory":
        return MemoryObjectStorage(
            url_ttl=timedelta(seconds=config.backend.signed_url_ttl_seconds),
            base_url=config.backend.storage_base_url
        )
    raise ConfigurationError(
        f"Unsupported storage backend: {config.backend.storage_implementation}; pass one explicitly"
    )


_current_services: Optional[StoreServices] = None


def configure_storekit(config: Optional[StoreConfig] = None,
                       backend: Optional[PersistenceBackend] = None,
                       storage: Optional[ObjectStorageBackend] = None,
                       configure_logging: bool = False) -> StoreServices:
    """
    Build and install the process-wide services.

    Args:
        config: Configuration; the global configuration when omitted
        backend: Persistence backend; built from configuration when omitted
        storage: Object storage backend; built from configuration when omitted
        configure_logging: Apply ``config.logging`` to the root logger

    Returns:
        The installed services
    """
    global _current_services

    config = config or get_config()
    if configure_logging:
        config.logging.apply()

    if _current_services is not None:
        logger.info("Replacing existing storekit services")
        _current_services.shutdown()

    registry = SubscriptionRegistry()
    cache = EntityCache(registry)
    store = Store(backend or _create_backend(config), cache)
    file_store = FileStore(
        storage or _create_storage(config),
        safety_margin=config.cache.url_safety_margin,
        negative_ttl=config.cache.url_negative_ttl
    )

    _current_services = StoreServices(
        config=config,
        registry=registry,
        cache=cache,
        store=store,
        file_store=file_store
    )
    logger.info(f"storekit configured for {config.environment.value}")
    return _current_services


def get_services() -> StoreServices:
    if _current_services is None:
        raise ConfigurationError("storekit is not configured; call configure_storekit() first")
    return _current_services


def get_store() -> Store:
    return get_services().store


def get_file_store() -> FileStore:
    return get_services().file_store


def shutdown_storekit():
    """Tear down the current services, if any"""
    global _current_services
    if _current_services is None:
        return
    _current_services.shutdown()
    _current_services = None
    logger.info("storekit shut down")


__all__ = [
    "StoreServices", "ConfigurationError", "configure_storekit",
    "get_services", "get_store", "get_file_store", "shutdown_storekit"
]
