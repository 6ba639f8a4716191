"""
Prometheus metrics support for limiter observability.

Usage:
    from prometheus_client import CollectorRegistry
    from superlimit import Limiter
    from superlimit.metrics import LimiterMetrics

    metrics = LimiterMetrics(registry=CollectorRegistry())
    limiter = Limiter(redis_client, metrics=metrics, max=100)
"""

import logging
import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

logger = logging.getLogger(__name__)

_BUCKETS = (0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)


class LimiterMetrics:
    """
    Prometheus metrics collector for the limiter.

    Tracks exec decisions, backend latency and errors, and the expire
    recovery path. Metric names follow Prometheus naming conventions.
    """

    def __init__(
        self,
        namespace: str = "superlimit",
        registry: Optional[CollectorRegistry] = None,
    ):
        """
        Initialize metrics collector.

        Args:
            namespace: Prometheus namespace for metrics
            registry: Registry to register with (defaults to the global one)
        """
        self.namespace = namespace
        registry = registry if registry is not None else REGISTRY

        self.exec_total = Counter(
            f"{namespace}_exec_total",
            "Total number of exec calls by decision",
            ["result"],  # result: allowed, denied, exempt
            registry=registry,
        )

        self.exec_duration = Histogram(
            f"{namespace}_exec_duration_seconds",
            "Time spent in exec, including the store round trip",
            buckets=_BUCKETS,
            registry=registry,
        )

        self.backend_operations_total = Counter(
            f"{namespace}_backend_operations_total",
            "Total number of backend operations",
            ["operation", "status"],  # status: success, error
            registry=registry,
        )

        self.backend_operation_duration = Histogram(
            f"{namespace}_backend_operation_duration_seconds",
            "Time spent on backend operations",
            ["operation"],
            buckets=_BUCKETS,
            registry=registry,
        )

        self.expire_retries_total = Counter(
            f"{namespace}_expire_retries_total",
            "Number of delayed expire retries scheduled",
            registry=registry,
        )

        self.expire_failures_total = Counter(
            f"{namespace}_expire_failures_total",
            "Number of buckets left without a TTL after the retry",
            registry=registry,
        )

        logger.info(f"Prometheus metrics initialized with namespace '{namespace}'")

    @contextmanager
    def track_exec_duration(self) -> Generator[None, None, None]:
        """Context manager to time one exec call."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            self.exec_duration.observe(time.perf_counter() - start_time)

    @contextmanager
    def track_backend_operation(self, operation: str) -> Generator[None, None, None]:
        """
        Context manager to track backend operation duration and status.

        Args:
            operation: Operation name (e.g., "incr_with_expire", "scan")
        """
        start_time = time.perf_counter()
        status = "success"
        try:
            yield
        except Exception:
            status = "error"
            raise
        finally:
            duration = time.perf_counter() - start_time
            self.backend_operations_total.labels(operation=operation, status=status).inc()
            self.backend_operation_duration.labels(operation=operation).observe(duration)

    def record_exec(self, result: str) -> None:
        self.exec_total.labels(result=result).inc()

    def record_expire_retry(self) -> None:
        self.expire_retries_total.inc()

    def record_expire_failure(self) -> None:
        self.expire_failures_total.inc()
