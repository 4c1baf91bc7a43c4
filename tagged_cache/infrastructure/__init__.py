"""
Store Infrastructure Module

Store gateway implementations and their wiring:
- RiakHttpGateway: Riak HTTP API with native secondary indexes
- RedisIndexGateway: secondary indexes emulated with Redis sets
- InMemoryStoreGateway: process-local gateway for tests and development
- CircuitBreaker: fail fast while a store is unreachable
"""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerMetrics,
    CircuitState,
)
from .memory.gateway import InMemoryStoreGateway
from .redis.index_gateway import RedisIndexGateway
from .riak.http_gateway import RiakHttpGateway

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerMetrics",
    "CircuitState",
    "InMemoryStoreGateway",
    "RedisIndexGateway",
    "RiakHttpGateway",
]
