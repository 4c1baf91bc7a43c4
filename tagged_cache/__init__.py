"""
Tagged Cache

Cache backend persisting opaque byte payloads in a key/value store with
secondary indexes, supporting per-entry expiration and tag based
invalidation.
"""

from .core.config import CacheSettings, get_settings
from .core.logging import configure_logging
from .domain.cache.backend_interfaces import CacheBackend, TaggableCacheBackend
from .domain.cache.exceptions import (
    BulkDeletionError,
    CacheConfigurationError,
    CacheException,
    IndexesNotSupportedError,
    InvalidArgumentError,
    InvalidDataError,
    InvalidInputError,
    StoreCircuitOpenError,
    StoreException,
    StoreOperationError,
    StoreUnavailableError,
)
from .domain.cache.repository_interfaces import StoreGateway
from .infrastructure.gateway_factory import (
    create_cache_backend,
    create_cache_backend_from_options,
    create_gateway,
)
from .services.cache.tagged_backend import TaggedExpiringCacheBackend

__version__ = "0.1.0"

__all__ = [
    # Backend
    "CacheBackend",
    "TaggableCacheBackend",
    "TaggedExpiringCacheBackend",
    "StoreGateway",
    # Wiring
    "CacheSettings",
    "get_settings",
    "configure_logging",
    "create_cache_backend",
    "create_cache_backend_from_options",
    "create_gateway",
    # Exceptions
    "CacheException",
    "InvalidInputError",
    "InvalidArgumentError",
    "InvalidDataError",
    "CacheConfigurationError",
    "StoreException",
    "StoreUnavailableError",
    "StoreCircuitOpenError",
    "StoreOperationError",
    "IndexesNotSupportedError",
    "BulkDeletionError",
]
