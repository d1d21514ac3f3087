"""
Memoizing cache accessor for threaded hosts.
"""

import contextvars
import threading
import time
from concurrent.futures import Future
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar, TYPE_CHECKING

from shared.logging import get_logger, set_cache_context
from .accessor import validate_key, _MISSING
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import CacheConfig
    from shared.metrics import CacheMetrics

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class SyncMemoizingCacheAccessor(Generic[K, V]):
    """Thread-safe counterpart of MemoizingCacheAccessor for plain callables.

    The lock guards only the store and the in-flight table and is released
    before the producer runs, so misses for different keys compute in
    parallel while threads missing the same key wait on one Future.
    """

    def __init__(
        self,
        producer: Callable[[K], V],
        *,
        store: Optional[CacheStore] = None,
        name: str = "default",
        metrics: Optional["CacheMetrics"] = None,
    ):
        self.producer = producer
        self.name = name
        self.metrics = metrics
        self.logger = get_logger("memo_cache.sync_accessor")
        self._store: CacheStore = store if store is not None else CacheStore()
        self._in_flight: Dict[K, "Future[V]"] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "coalesced": 0, "producer_failures": 0}

    @classmethod
    def from_config(
        cls,
        producer: Callable[[K], V],
        config: "CacheConfig",
        metrics: Optional["CacheMetrics"] = None,
    ) -> "SyncMemoizingCacheAccessor[K, V]":
        """Build an accessor and its store from cache settings."""
        return cls(
            producer,
            store=CacheStore.from_config(config),
            name=config.name,
            metrics=metrics if config.enable_metrics else None,
        )

    def get_or_compute(self, key: K) -> V:
        """Return the cached value for `key`, running the producer on a miss."""
        validate_key(key)

        with self._lock:
            value = self._store.get(key, _MISSING)
            if value is not _MISSING:
                self._stats["hits"] += 1
                hit = True
            else:
                hit = False
                pending = self._in_flight.get(key)
                owner = pending is None
                if owner:
                    self._stats["misses"] += 1
                    pending = Future()
                    self._in_flight[key] = pending
                else:
                    self._stats["coalesced"] += 1

        if hit:
            if self.metrics:
                self.metrics.record_hit(self.name)
            self.logger.debug("Cache hit", cache=self.name, key=repr(key))
            return value

        if not owner:
            if self.metrics:
                self.metrics.record_coalesced(self.name)
            self.logger.debug("Awaiting in-flight computation", cache=self.name, key=repr(key))
            return pending.result()

        if self.metrics:
            self.metrics.record_miss(self.name)
        self.logger.debug("Cache miss", cache=self.name, key=repr(key))
        return self._compute(key, pending)

    def _compute(self, key: K, pending: "Future[V]") -> V:
        """Run the producer for `key`, store its result and settle `pending`."""
        self._publish_sizes()
        start_time = time.perf_counter()
        try:
            value = contextvars.copy_context().run(self._produce, key)
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
                self._stats["producer_failures"] += 1
            if self.metrics:
                self.metrics.record_producer_failure(self.name, type(exc).__name__)
                self.metrics.observe_producer_duration(self.name, time.perf_counter() - start_time)
            self.logger.warning(
                "Producer failed",
                cache=self.name,
                key=repr(key),
                error=str(exc),
                error_type=type(exc).__name__
            )
            pending.set_exception(exc)
            self._publish_sizes()
            raise

        with self._lock:
            self._store.put(key, value)
            self._in_flight.pop(key, None)
        if self.metrics:
            self.metrics.observe_producer_duration(self.name, time.perf_counter() - start_time)
        pending.set_result(value)
        self._publish_sizes()
        return value

    def _produce(self, key: K) -> V:
        set_cache_context(self.name)
        return self.producer(key)

    def _publish_sizes(self) -> None:
        if self.metrics:
            with self._lock:
                entries, in_flight = len(self._store), len(self._in_flight)
            self.metrics.update_sizes(self.name, entries, in_flight)

    def set(self, key: K, value: V) -> None:
        """Store `value` for `key` directly, replacing any previous value."""
        validate_key(key)
        with self._lock:
            self._store.put(key, value)
        self._publish_sizes()

    def invalidate(self, key: K) -> bool:
        """Drop the stored value for `key`; in-flight computations still store."""
        validate_key(key)
        with self._lock:
            removed = self._store.delete(key)
        if removed:
            self.logger.debug("Invalidated cache entry", cache=self.name, key=repr(key))
            self._publish_sizes()
        return removed

    def clear(self) -> None:
        with self._lock:
            count = len(self._store)
            self._store.clear()
        self.logger.info("Cleared cache", cache=self.name, keys_count=count)
        self._publish_sizes()

    def contains(self, key: K) -> bool:
        validate_key(key)
        with self._lock:
            return key in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "name": self.name,
                "policy": self._store.policy.value,
                "entries": len(self._store),
                "in_flight": len(self._in_flight),
                **self._stats,
            }
