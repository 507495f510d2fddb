"""
File Store - Signed URL Cache

Resolves storage paths to signed URLs and keeps them until shortly before they
expire. Failed resolutions (missing object, storage outage) are remembered for
a short cooldown so that repeated renders of a broken image do not hammer the
storage backend.

Paths already encode the tenant (``<account>/users/<user>/pic.png``), so entries
are never shared across accounts.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ..persistence.backends.interface import ObjectStorageBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UrlCacheEntry:
    """Resolution result for one path; ``failed`` entries carry no URL"""
    path: str
    url: Optional[str]
    expires_at: datetime
    failed: bool = False


@dataclass
class UrlCacheMetrics:
    hits: int = 0
    misses: int = 0
    resolutions: int = 0
    coalesced: int = 0
    failures: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "resolutions": self.resolutions,
            "coalesced": self.coalesced,
            "failures": self.failures
        }


class FileStore:
    """
    Signed URL cache in front of an object storage backend.

    Args:
        storage: Backend resolving paths to signed URLs
        safety_margin: URLs are refreshed once they are this close to expiry
        negative_ttl: How long a failed resolution is remembered
        clock: Source of "now"; must agree with the backend's ``expires_at``
    """

    def __init__(self,
                 storage: ObjectStorageBackend,
                 safety_margin: timedelta = timedelta(seconds=60),
                 negative_ttl: timedelta = timedelta(seconds=30),
                 clock: Callable[[], datetime] = datetime.now):
        self._storage = storage
        self._entries: Dict[str, UrlCacheEntry] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self.safety_margin = safety_margin
        self.negative_ttl = negative_ttl
        self.clock = clock
        self.metrics = UrlCacheMetrics()

    def _is_fresh(self, entry: UrlCacheEntry) -> bool:
        now = self.clock()
        if entry.failed:
            return now < entry.expires_at
        return now < entry.expires_at - self.safety_margin

    def get_cached_url(self, path: Optional[str]) -> Optional[str]:
        """Cached URL for ``path`` if one is still valid; never calls the backend"""
        if not path:
            return None
        entry = self._entries.get(path)
        if entry is None or entry.failed or self.clock() >= entry.expires_at:
            return None
        return entry.url

    def needs_refresh(self, path: Optional[str]) -> bool:
        """True when ``get_url_async`` would call the backend for ``path``"""
        if not path:
            return False
        entry = self._entries.get(path)
        return entry is None or not self._is_fresh(entry)

    async def get_url_async(self, path: Optional[str]) -> Optional[str]:
        """
        Signed URL for ``path``.

        Returns:
            The URL, or None for an empty path or a path that failed to resolve
            within the negative cache window
        """
        if not path:
            return None

        entry = self._entries.get(path)
        if entry is not None and self._is_fresh(entry):
            self.metrics.hits += 1
            return entry.url

        self.metrics.misses += 1
        task = self._inflight.get(path)
        if task is None or task.done():
            task = asyncio.ensure_future(self._resolve(path))
            self._inflight[path] = task
            task.add_done_callback(lambda done, path=path: self._forget(path, done))
        else:
            self.metrics.coalesced += 1
        return await asyncio.shield(task)

    def _forget(self, path: str, task: asyncio.Task):
        if self._inflight.get(path) is task:
            del self._inflight[path]

    async def _resolve(self, path: str) -> Optional[str]:
        self.metrics.resolutions += 1
        try:
            signed = await self._storage.resolve_signed_url(path)
        except Exception as e:
            self.metrics.failures += 1
            logger.warning(f"Could not resolve signed URL for {path}: {e}")
            self._entries[path] = UrlCacheEntry(
                path=path,
                url=None,
                expires_at=self.clock() + self.negative_ttl,
                failed=True
            )
            return None

        self._entries[path] = UrlCacheEntry(path=path, url=signed.url, expires_at=signed.expires_at)
        return signed.url

    def invalidate(self, path: str):
        """Forget ``path``, e.g. after the object was replaced"""
        self._entries.pop(path, None)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_metrics(self) -> Dict[str, Any]:
        metrics = self.metrics.to_dict()
        metrics["cached_paths"] = len(self._entries)
        return metrics


__all__ = ["FileStore", "UrlCacheEntry", "UrlCacheMetrics"]
