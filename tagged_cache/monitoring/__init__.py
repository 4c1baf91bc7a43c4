"""
Cache Monitoring Module

Prometheus instrumentation for cache operations.
"""

from .cache_metrics import CacheMetricsCollector

__all__ = ["CacheMetricsCollector"]
