"""
Shared fixtures for Hospital Service tests.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_hospital.app.cache import CacheService, FallbackStore, RedisPrimaryBackend
from shared.metrics import MetricsCollector
from shared.test_helpers import FakeRedisClient


@pytest.fixture
def fake_redis():
    """In-memory Redis client double."""
    return FakeRedisClient()


@pytest.fixture
def metrics():
    """Metrics collector with its own registry."""
    return MetricsCollector("hospital")


@pytest.fixture
def primary(fake_redis, metrics):
    """Primary backend wired to the fake client, not yet connected."""
    return RedisPrimaryBackend(
        "redis://localhost:6379/0",
        operation_timeout=0.5,
        reconnect_base_delay=0.01,
        reconnect_max_delay=0.05,
        metrics=metrics,
        client_factory=lambda url, timeout: fake_redis,
    )


@pytest.fixture
async def disconnected_cache(primary, metrics):
    """Cache layer running on the in-memory fallback."""
    cache = CacheService(primary, FallbackStore(max_entries=1000), metrics=metrics)
    yield cache
    await cache.stop()


@pytest.fixture
async def connected_cache(primary, metrics):
    """Cache layer with the primary backend connected."""
    cache = CacheService(primary, FallbackStore(max_entries=1000), metrics=metrics)
    await cache.start()
    assert cache.primary_connected
    yield cache
    await cache.stop()


@pytest.fixture(params=["connected", "disconnected"])
async def cache(request, primary, metrics):
    """Cache layer in each backend state."""
    cache = CacheService(primary, FallbackStore(max_entries=1000), metrics=metrics)
    if request.param == "connected":
        await cache.start()
    yield cache
    await cache.stop()
