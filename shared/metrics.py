"""
Shared metrics configuration for the memo-cache library.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry


class CacheMetrics:
    """Prometheus metrics for memoizing cache accessors.

    Every metric is labelled by cache name so several accessors can share one
    collector. When ``registry`` is None the metrics are created unregistered,
    which keeps repeated construction (tests, short-lived caches) free of
    duplicate-timeseries errors.
    """

    def __init__(self, service_name: str = "memo_cache", registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up cache metrics."""
        self._metrics["cache_info"] = Info(
            "cache_info",
            "Cache library information",
            registry=self.registry
        )
        self._metrics["cache_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["cache"],
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses that started a producer call",
            ["cache"],
            registry=self.registry
        )

        self._metrics["cache_coalesced_total"] = Counter(
            "cache_coalesced_total",
            "Total misses that joined an in-flight computation",
            ["cache"],
            registry=self.registry
        )

        self._metrics["cache_producer_failures_total"] = Counter(
            "cache_producer_failures_total",
            "Total producer failures",
            ["cache", "error_type"],
            registry=self.registry
        )

        self._metrics["cache_producer_duration_seconds"] = Histogram(
            "cache_producer_duration_seconds",
            "Producer call duration in seconds",
            ["cache"],
            registry=self.registry
        )

        self._metrics["cache_entries"] = Gauge(
            "cache_entries",
            "Number of stored cache entries",
            ["cache"],
            registry=self.registry
        )

        self._metrics["cache_in_flight"] = Gauge(
            "cache_in_flight",
            "Number of in-flight producer computations",
            ["cache"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_hit(self, cache: str):
        """Record a cache hit."""
        self._metrics["cache_hits_total"].labels(cache=cache).inc()

    def record_miss(self, cache: str):
        """Record a cache miss that starts a producer call."""
        self._metrics["cache_misses_total"].labels(cache=cache).inc()

    def record_coalesced(self, cache: str):
        """Record a miss that awaited an in-flight computation."""
        self._metrics["cache_coalesced_total"].labels(cache=cache).inc()

    def record_producer_failure(self, cache: str, error_type: str):
        """Record a failed producer call."""
        self._metrics["cache_producer_failures_total"].labels(cache=cache, error_type=error_type).inc()

    def update_sizes(self, cache: str, entries: int, in_flight: int):
        """Publish current entry and in-flight counts."""
        with self._lock:
            self._metrics["cache_entries"].labels(cache=cache).set(entries)
            self._metrics["cache_in_flight"].labels(cache=cache).set(in_flight)

    def observe_producer_duration(self, cache: str, duration: float):
        """Record how long a producer call took."""
        self._metrics["cache_producer_duration_seconds"].labels(cache=cache).observe(duration)


def get_cache_metrics(service_name: str = "memo_cache", registry: Optional[CollectorRegistry] = None) -> CacheMetrics:
    """Get a metrics collector for cache accessors."""
    return CacheMetrics(service_name, registry)
