"""
Main pytest configuration for tagged cache tests.

Fixtures for unit tests (in-memory gateway, controllable clock) and
markers for integration tests against a live store.
"""

import os

import pytest

# Set test environment variables before importing package modules
os.environ.setdefault("TAGGED_CACHE_STORE_TYPE", "memory")
os.environ.setdefault("TAGGED_CACHE_LOG_LEVEL", "DEBUG")

from tagged_cache.core.logging import configure_logging
from tagged_cache.infrastructure.memory.gateway import InMemoryStoreGateway
from tagged_cache.monitoring.cache_metrics import CacheMetricsCollector
from tagged_cache.services.cache.tagged_backend import TaggedExpiringCacheBackend

configure_logging("DEBUG", json_output=False)


class FakeClock:
    """Controllable unix time source."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Clock frozen at a fixed instant until advanced."""
    return FakeClock()


@pytest.fixture
def gateway():
    """Fresh in-memory store gateway."""
    return InMemoryStoreGateway()


@pytest.fixture
def metrics():
    """Metrics collector with its own registry."""
    return CacheMetricsCollector()


@pytest.fixture
def backend(gateway, clock, metrics):
    """Cache backend on the in-memory gateway."""
    return TaggedExpiringCacheBackend(
        gateway, bucket_name="test_cache", clock=clock, metrics=metrics
    )


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "redis: marks tests as Redis-related")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file location."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        if "redis" in item.nodeid:
            item.add_marker(pytest.mark.redis)
