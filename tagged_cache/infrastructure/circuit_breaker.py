"""
Store Circuit Breaker Implementation

Implements the circuit breaker pattern for store gateway calls
to stop hammering an unreachable store and fail fast instead.
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar

import structlog

from ..domain.cache.exceptions import StoreCircuitOpenError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if store recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    # Failure threshold - number of failures before opening
    failure_threshold: int = 5

    # Recovery timeout - seconds to wait before trying again
    recovery_timeout: float = 30.0

    # Success threshold - number of successes needed to close circuit
    success_threshold: int = 1

    # Monitor these exception types as failures
    failure_exceptions: tuple = (
        ConnectionError,
        TimeoutError,
        OSError,
    )


@dataclass
class CircuitBreakerMetrics:
    """Metrics for circuit breaker monitoring."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    circuit_opens: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        if self.total_calls == 0:
            return 0.0
        return self.successful_calls / self.total_calls

    @property
    def failure_rate(self) -> float:
        """Calculate failure rate."""
        if self.total_calls == 0:
            return 0.0
        return self.failed_calls / self.total_calls


class CircuitBreaker:
    """
    Circuit breaker for store operations.

    Rejects calls with ``StoreCircuitOpenError`` once the failure threshold
    is reached, until the recovery timeout lets a trial call through.
    Only exceptions listed in ``failure_exceptions`` count as failures;
    any other exception counts as a completed call.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        name: str = "store",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[float] = None
        self.metrics = CircuitBreakerMetrics()
        self._lock = threading.Lock()

    def call(self, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Execute function with circuit breaker protection.

        Raises:
            StoreCircuitOpenError: If circuit is open
            Exception: Original exception from function call
        """
        with self._lock:
            self.metrics.total_calls += 1
            if self.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self.state = CircuitState.HALF_OPEN
                    logger.info(
                        "Circuit breaker transitioning to HALF_OPEN",
                        breaker=self.name,
                        failure_count=self.failure_count,
                    )
                else:
                    self.metrics.rejected_calls += 1
                    raise StoreCircuitOpenError(
                        f"Circuit breaker '{self.name}' is open - store unavailable"
                    )

        try:
            result = func(*args, **kwargs)
        except self.config.failure_exceptions as e:
            self._record_failure(type(e).__name__)
            raise
        except Exception:
            # The store was reached, so the call still completes a trial
            self._record_success()
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        with self._lock:
            self.metrics.successful_calls += 1
            self.metrics.last_success_time = self._clock()

            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self.state = CircuitState.CLOSED
                    self.failure_count = 0
                    self.success_count = 0
                    logger.info(
                        "Circuit breaker: circuit closed after successful recovery",
                        breaker=self.name,
                    )
            elif self.failure_count > 0:
                self.failure_count -= 1

    def _record_failure(self, failure_type: str) -> None:
        with self._lock:
            now = self._clock()
            self.metrics.failed_calls += 1
            self.metrics.last_failure_time = now
            self.last_failure_time = now

            if self.state == CircuitState.HALF_OPEN:
                self.state = CircuitState.OPEN
                self.success_count = 0
                self.metrics.circuit_opens += 1
                logger.warning(
                    "Circuit breaker: circuit opened again after failure in half-open state",
                    breaker=self.name,
                    failure_type=failure_type,
                )

            elif self.state == CircuitState.CLOSED:
                self.failure_count += 1
                if self.failure_count >= self.config.failure_threshold:
                    self.state = CircuitState.OPEN
                    self.metrics.circuit_opens += 1
                    logger.warning(
                        "Circuit breaker: circuit opened due to failure threshold",
                        breaker=self.name,
                        failure_count=self.failure_count,
                        threshold=self.config.failure_threshold,
                        failure_type=failure_type,
                    )

    def _should_attempt_reset(self) -> bool:
        if self.last_failure_time is None:
            return True
        return self._clock() - self.last_failure_time >= self.config.recovery_timeout

    def get_status(self) -> dict:
        """Get current circuit breaker status for monitoring."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
            "metrics": {
                "total_calls": self.metrics.total_calls,
                "successful_calls": self.metrics.successful_calls,
                "failed_calls": self.metrics.failed_calls,
                "rejected_calls": self.metrics.rejected_calls,
                "success_rate": self.metrics.success_rate,
                "failure_rate": self.metrics.failure_rate,
                "circuit_opens": self.metrics.circuit_opens,
            },
        }

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        with self._lock:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self.success_count = 0
            self.last_failure_time = None
            logger.info("Circuit breaker manually reset to CLOSED state", breaker=self.name)
