"""
Configuration Management for storekit

🔧 Unified Configuration System:
Settings for the caches, the backends and logging, with presets per
environment and loading from dictionaries, JSON/YAML files and environment
variables.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


class Environment(Enum):
    """Application environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


@dataclass
class CacheConfig:
    """Entity and URL cache configuration"""
    url_safety_margin_seconds: float = 60.0
    url_negative_ttl_seconds: float = 30.0

    @property
    def url_safety_margin(self) -> timedelta:
        return timedelta(seconds=self.url_safety_margin_seconds)

    @property
    def url_negative_ttl(self) -> timedelta:
        return timedelta(seconds=self.url_negative_ttl_seconds)


@dataclass
class BackendConfig:
    """Persistence and object storage backend configuration"""
    implementation: str = "memory"
    storage_implementation: str = "memory"
    signed_url_ttl_seconds: float = 3600.0
    storage_base_url: str = "memory://storage"
    latency_seconds: float = 0.0
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    def apply(self):
        """Configure the root logger"""
        handlers = [logging.StreamHandler()]
        if self.file_path:
            handlers.append(RotatingFileHandler(
                self.file_path,
                maxBytes=self.max_file_size,
                backupCount=self.backup_count
            ))
        logging.basicConfig(
            level=getattr(logging, self.level.upper(), logging.INFO),
            format=self.format,
            handlers=handlers,
            force=True
        )


@dataclass
class StoreConfig:
    """Complete storekit configuration"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    cache: CacheConfig = field(default_factory=CacheConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    custom: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_environment(cls, environment: Environment) -> 'StoreConfig':
        """Create configuration for specific environment"""
        config = cls(environment=environment)

        if environment == Environment.DEVELOPMENT:
            config.debug = True
            config.logging.level = "DEBUG"

        elif environment == Environment.TESTING:
            config.logging.level = "WARNING"
            config.cache.url_negative_ttl_seconds = 1.0

        elif environment == Environment.PRODUCTION:
            config.debug = False
            config.logging.level = "INFO"

        return config

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'StoreConfig':
        """Create configuration from dictionary"""
        environment = Environment(config_dict.get("environment", Environment.DEVELOPMENT.value))
        config = cls.for_environment(environment)

        if "debug" in config_dict:
            config.debug = bool(config_dict["debug"])

        for section in ("cache", "backend", "logging"):
            target = getattr(config, section)
            for key, value in (config_dict.get(section) or {}).items():
                if hasattr(target, key):
                    setattr(target, key, value)

        config.custom.update(config_dict.get("custom") or {})
        return config

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> 'StoreConfig':
        """Load configuration from a .json, .yml or .yaml file"""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            if config_path.suffix == '.json':
                config_dict = json.load(f)
            elif config_path.suffix in ('.yml', '.yaml'):
                config_dict = yaml.safe_load(f) or {}
            else:
                raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        return cls.from_dict(config_dict)

    @classmethod
    def from_environment(cls) -> 'StoreConfig':
        """Create configuration from environment variables"""
        environment = Environment(os.getenv('STOREKIT_ENV', 'development'))
        config = cls.for_environment(environment)

        if os.getenv('STOREKIT_DEBUG'):
            config.debug = os.getenv('STOREKIT_DEBUG').lower() == 'true'

        if os.getenv('STOREKIT_LOG_LEVEL'):
            config.logging.level = os.getenv('STOREKIT_LOG_LEVEL')

        if os.getenv('STOREKIT_URL_SAFETY_MARGIN'):
            config.cache.url_safety_margin_seconds = float(os.getenv('STOREKIT_URL_SAFETY_MARGIN'))

        if os.getenv('STOREKIT_URL_NEGATIVE_TTL'):
            config.cache.url_negative_ttl_seconds = float(os.getenv('STOREKIT_URL_NEGATIVE_TTL'))

        if os.getenv('STOREKIT_SIGNED_URL_TTL'):
            config.backend.signed_url_ttl_seconds = float(os.getenv('STOREKIT_SIGNED_URL_TTL'))

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            "environment": self.environment.value,
            "debug": self.debug,
            "cache": {
                "url_safety_margin_seconds": self.cache.url_safety_margin_seconds,
                "url_negative_ttl_seconds": self.cache.url_negative_ttl_seconds
            },
            "backend": {
                "implementation": self.backend.implementation,
                "storage_implementation": self.backend.storage_implementation,
                "signed_url_ttl_seconds": self.backend.signed_url_ttl_seconds,
                "storage_base_url": self.backend.storage_base_url,
                "latency_seconds": self.backend.latency_seconds,
                "config": self.backend.config
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "file_path": self.logging.file_path,
                "max_file_size": self.logging.max_file_size,
                "backup_count": self.logging.backup_count
            },
            "custom": self.custom
        }


# Global configuration management
_current_config: Optional[StoreConfig] = None


def set_config(config: StoreConfig):
    """Set the global configuration"""
    global _current_config
    _current_config = config


def get_config() -> StoreConfig:
    """Get the current global configuration"""
    global _current_config

    if _current_config is None:
        # Auto-create from environment if not set
        _current_config = StoreConfig.from_environment()

    return _current_config


def reset_config():
    global _current_config
    _current_config = None


__all__ = [
    "StoreConfig", "Environment", "CacheConfig", "BackendConfig", "LoggingConfig",
    "set_config", "get_config", "reset_config"
]
