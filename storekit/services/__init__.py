"""
Services - Store and File Store
"""

from .store import CacheMetrics, Store
from .file_store import FileStore, UrlCacheEntry, UrlCacheMetrics

__all__ = ["Store", "CacheMetrics", "FileStore", "UrlCacheEntry", "UrlCacheMetrics"]
