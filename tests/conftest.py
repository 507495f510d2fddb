"""Shared fixtures: memory backends, a controllable clock, wired services."""

from datetime import datetime, timedelta

import pytest

from storekit.persistence.backends.memory import MemoryBackend, MemoryObjectStorage
from storekit.persistence.cache.entity_cache import EntityCache
from storekit.reactivity.subscriptions import SubscriptionRegistry
from storekit.services.file_store import FileStore
from storekit.services.store import Store

PICTURE_PATH = "acct1/users/u1/pic.png"


class FakeClock:
    """Manually advanced clock"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def registry():
    return SubscriptionRegistry()


@pytest.fixture
def cache(registry):
    return EntityCache(registry)


@pytest.fixture
def store(backend, cache):
    return Store(backend, cache)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(clock):
    return MemoryObjectStorage(
        objects=[PICTURE_PATH],
        url_ttl=timedelta(minutes=10),
        clock=clock
    )


@pytest.fixture
def file_store(storage, clock):
    return FileStore(
        storage,
        safety_margin=timedelta(seconds=60),
        negative_ttl=timedelta(seconds=30),
        clock=clock
    )


@pytest.fixture
def seeded(backend):
    """Two accounts worth of profiles and segments"""
    profiles = backend.seed("profile", [
        {"id": "p1", "account_id": "a1", "first_name": "Ada", "email": "ada@example.com"},
        {"id": "p2", "account_id": "a1", "first_name": "Grace", "email": "grace@example.com"},
        {"id": "p3", "account_id": "a2", "first_name": "Linus", "email": "linus@example.com"},
    ])
    segments = backend.seed("segment", [
        {"id": "s1", "account_id": "a1", "name": "Newsletter"},
        {"id": "s9", "account_id": "a1", "name": "Churn risk", "criteria": {"days_inactive": 30}},
    ])
    return {"profile": profiles, "segment": segments}
