"""
Cache Metrics Collector

Prometheus metrics for cache operations: hit/miss counts, writes,
deletions by cause, failed bulk deletions and operation latency.
Each collector owns its registry so independent backends never clash.
"""

import time
from contextlib import contextmanager
from typing import Dict, Optional

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    generate_latest,
)


class CacheMetricsCollector:
    """Prometheus instrumentation for one cache backend."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.prom_lookups_total = Counter(
            "tagged_cache_lookups_total",
            "Point lookups by result (hit, miss, expired)",
            ["bucket", "result"],
            registry=self.registry,
        )
        self.prom_writes_total = Counter(
            "tagged_cache_writes_total",
            "Entries written, split by created or replaced",
            ["bucket", "mode"],
            registry=self.registry,
        )
        self.prom_deletions_total = Counter(
            "tagged_cache_deletions_total",
            "Entries deleted by cause",
            ["bucket", "cause"],
            registry=self.registry,
        )
        self.prom_bulk_failures_total = Counter(
            "tagged_cache_bulk_delete_failures_total",
            "Deletions that failed during flush or garbage collection",
            ["bucket", "operation"],
            registry=self.registry,
        )
        self.prom_operation_duration = Histogram(
            "tagged_cache_operation_duration_seconds",
            "Cache operation duration in seconds",
            ["bucket", "operation"],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry,
        )

    def record_lookup(self, bucket: str, result: str) -> None:
        self.prom_lookups_total.labels(bucket=bucket, result=result).inc()

    def record_write(self, bucket: str, replaced: bool) -> None:
        mode = "replaced" if replaced else "created"
        self.prom_writes_total.labels(bucket=bucket, mode=mode).inc()

    def record_deletions(self, bucket: str, cause: str, count: int = 1) -> None:
        if count:
            self.prom_deletions_total.labels(bucket=bucket, cause=cause).inc(count)

    def record_bulk_failures(self, bucket: str, operation: str, count: int) -> None:
        if count:
            self.prom_bulk_failures_total.labels(
                bucket=bucket, operation=operation
            ).inc(count)

    @contextmanager
    def track(self, bucket: str, operation: str):
        """Observe the duration of the wrapped block, failures included."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.prom_operation_duration.labels(
                bucket=bucket, operation=operation
            ).observe(time.perf_counter() - start_time)

    def sample(self, name: str, labels: Dict[str, str]) -> float:
        """Current value of one sample, 0.0 if it was never recorded."""
        value = self.registry.get_sample_value(name, labels)
        return value if value is not None else 0.0

    def export(self) -> bytes:
        """Metrics in Prometheus text exposition format."""
        return generate_latest(self.registry)
