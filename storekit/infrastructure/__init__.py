"""
Infrastructure - Configuration and Service Setup
"""

from .configuration import (
    BackendConfig, CacheConfig, Environment, LoggingConfig, StoreConfig,
    get_config, reset_config, set_config
)
from .configurator import (
    ConfigurationError, StoreServices, configure_storekit, get_file_store,
    get_services, get_store, shutdown_storekit
)

__all__ = [
    "StoreConfig", "Environment", "CacheConfig", "BackendConfig", "LoggingConfig",
    "get_config", "set_config", "reset_config",
    "StoreServices", "ConfigurationError", "configure_storekit",
    "get_services", "get_store", "get_file_store", "shutdown_storekit"
]
