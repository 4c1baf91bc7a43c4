"""
Store Gateway Factory

Builds the configured store gateway and a cache backend wired to it.
Every backend gets its own gateway instance; nothing is shared through
module level state.
"""

import time
from typing import Any, Callable, Mapping, Optional

import httpx
import structlog
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
)

from ..core.config import CacheSettings, get_settings
from ..domain.cache.exceptions import CacheConfigurationError
from ..domain.cache.repository_interfaces import StoreGateway
from ..monitoring.cache_metrics import CacheMetricsCollector
from ..services.cache.tagged_backend import TaggedExpiringCacheBackend
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .memory.gateway import InMemoryStoreGateway
from .redis.index_gateway import RedisIndexGateway
from .riak.http_gateway import RiakHttpGateway

logger = structlog.get_logger(__name__)


def _circuit_breaker(
    settings: CacheSettings, failure_exceptions: tuple, name: str
) -> CircuitBreaker:
    return CircuitBreaker(
        CircuitBreakerConfig(
            failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            failure_exceptions=failure_exceptions,
        ),
        name=name,
    )


def create_gateway(settings: Optional[CacheSettings] = None) -> StoreGateway:
    """
    Create the store gateway selected by ``STORE_TYPE``.

    Raises:
        CacheConfigurationError: If the store type is unknown
    """
    settings = settings or get_settings()

    if settings.STORE_TYPE == "riak":
        gateway = RiakHttpGateway(
            hostname=settings.HOSTNAME,
            port=settings.PORT,
            timeout=settings.REQUEST_TIMEOUT,
            page_size=settings.INDEX_PAGE_SIZE,
            circuit_breaker=_circuit_breaker(
                settings,
                (httpx.TransportError,),
                f"riak:{settings.HOSTNAME}:{settings.PORT}",
            ),
        )
    elif settings.STORE_TYPE == "redis":
        gateway = RedisIndexGateway.from_settings(
            hostname=settings.HOSTNAME,
            port=settings.PORT,
            db=settings.REDIS_DB,
            timeout=settings.REQUEST_TIMEOUT,
            circuit_breaker=_circuit_breaker(
                settings,
                (RedisConnectionError, RedisTimeoutError),
                f"redis:{settings.HOSTNAME}:{settings.PORT}",
            ),
        )
    elif settings.STORE_TYPE == "memory":
        gateway = InMemoryStoreGateway()
    else:
        raise CacheConfigurationError(
            f"Unknown store type: {settings.STORE_TYPE}",
            option="STORE_TYPE",
            value=settings.STORE_TYPE,
        )

    logger.info(
        "Store gateway created",
        store_type=settings.STORE_TYPE,
        hostname=settings.HOSTNAME,
        port=settings.PORT,
    )
    return gateway


def create_cache_backend(
    settings: Optional[CacheSettings] = None,
    gateway: Optional[StoreGateway] = None,
    clock: Callable[[], float] = time.time,
    metrics: Optional[CacheMetricsCollector] = None,
) -> TaggedExpiringCacheBackend:
    """Create a cache backend from settings, building the gateway if needed."""
    settings = settings or get_settings()
    return TaggedExpiringCacheBackend(
        gateway=gateway or create_gateway(settings),
        bucket_name=settings.BUCKET_NAME,
        default_lifetime=settings.DEFAULT_LIFETIME,
        clock=clock,
        metrics=metrics,
    )


def create_cache_backend_from_options(
    options: Mapping[str, Any], **kwargs
) -> TaggedExpiringCacheBackend:
    """
    Create a cache backend from host application backend options.

    Args:
        options: ``hostname``, ``port``, ``bucketName`` and ``defaultLifetime``
        **kwargs: Passed on to ``create_cache_backend``

    Raises:
        CacheConfigurationError: unknown option or invalid value
    """
    return create_cache_backend(CacheSettings.from_options(options), **kwargs)
