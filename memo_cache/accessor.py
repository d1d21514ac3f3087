"""
Memoizing cache accessor for asyncio hosts.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, Iterable, Optional, TypeVar, TYPE_CHECKING

from shared.errors import InvalidKeyError
from shared.logging import get_logger, set_cache_context
from .store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import CacheConfig
    from shared.metrics import CacheMetrics

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_MISSING = object()


def validate_key(key: Any) -> None:
    """Reject keys that cannot address a stored value."""
    if key is None:
        raise InvalidKeyError("Cache key must not be None")
    try:
        hash(key)
    except TypeError:
        raise InvalidKeyError(
            "Cache key must be hashable",
            details={"key_type": type(key).__name__}
        ) from None


class MemoizingCacheAccessor(Generic[K, V]):
    """Return a stored value for a key, computing it once on a miss.

    Concurrent misses for the same key share a single producer call: the first
    caller registers an in-flight task, later callers await that task. Misses
    for different keys proceed independently. A failed computation stores
    nothing, so the next call for that key runs the producer again.
    """

    def __init__(
        self,
        producer: Callable[[K], Awaitable[V]],
        *,
        store: Optional[CacheStore] = None,
        name: str = "default",
        metrics: Optional["CacheMetrics"] = None,
        warm_concurrency: int = 5,
    ):
        self.producer = producer
        self.name = name
        self.metrics = metrics
        self.logger = get_logger("memo_cache.accessor")
        self._store: CacheStore = store if store is not None else CacheStore()
        self._in_flight: Dict[K, "asyncio.Task[V]"] = {}
        self._warm_concurrency = max(1, warm_concurrency)
        self._stats = {"hits": 0, "misses": 0, "coalesced": 0, "producer_failures": 0}

    @classmethod
    def from_config(
        cls,
        producer: Callable[[K], Awaitable[V]],
        config: "CacheConfig",
        metrics: Optional["CacheMetrics"] = None,
    ) -> "MemoizingCacheAccessor[K, V]":
        """Build an accessor and its store from cache settings."""
        return cls(
            producer,
            store=CacheStore.from_config(config),
            name=config.name,
            metrics=metrics if config.enable_metrics else None,
            warm_concurrency=config.warm_concurrency,
        )

    async def get_or_compute(self, key: K) -> V:
        """Return the cached value for `key`, running the producer on a miss."""
        validate_key(key)

        value = self._store.get(key, _MISSING)
        if value is not _MISSING:
            self._stats["hits"] += 1
            if self.metrics:
                self.metrics.record_hit(self.name)
            self.logger.debug("Cache hit", cache=self.name, key=repr(key))
            return value

        task = self._in_flight.get(key)
        if task is None:
            self._stats["misses"] += 1
            if self.metrics:
                self.metrics.record_miss(self.name)
            self.logger.debug("Cache miss", cache=self.name, key=repr(key))

            task = asyncio.get_running_loop().create_task(self._compute(key))
            task.add_done_callback(self._retrieve_exception)
            self._in_flight[key] = task
            self._publish_sizes()
        else:
            self._stats["coalesced"] += 1
            if self.metrics:
                self.metrics.record_coalesced(self.name)
            self.logger.debug("Awaiting in-flight computation", cache=self.name, key=repr(key))

        # Cancelling this caller must not cancel the computation other callers share
        return await asyncio.shield(task)

    async def _compute(self, key: K) -> V:
        """Run the producer for `key` and store its result."""
        # Runs in its own task, so the binding stays out of the callers' context
        set_cache_context(self.name)
        start_time = time.perf_counter()
        try:
            value = await self.producer(key)
            self._store.put(key, value)
            return value
        except Exception as exc:
            self._stats["producer_failures"] += 1
            if self.metrics:
                self.metrics.record_producer_failure(self.name, type(exc).__name__)
            self.logger.warning(
                "Producer failed",
                cache=self.name,
                key=repr(key),
                error=str(exc),
                error_type=type(exc).__name__
            )
            raise
        finally:
            self._in_flight.pop(key, None)
            if self.metrics:
                self.metrics.observe_producer_duration(self.name, time.perf_counter() - start_time)
            self._publish_sizes()

    @staticmethod
    def _retrieve_exception(task: "asyncio.Task") -> None:
        # Every waiter may have been cancelled; mark the failure as seen
        if not task.cancelled():
            task.exception()

    def _publish_sizes(self) -> None:
        if self.metrics:
            self.metrics.update_sizes(self.name, len(self._store), len(self._in_flight))

    def set(self, key: K, value: V) -> None:
        """Store `value` for `key` directly, replacing any previous value."""
        validate_key(key)
        self._store.put(key, value)
        self._publish_sizes()

    def invalidate(self, key: K) -> bool:
        """Drop the stored value for `key`.

        A computation already in flight for `key` is left running and stores
        its result when it completes.
        """
        validate_key(key)
        removed = self._store.delete(key)
        if removed:
            self.logger.debug("Invalidated cache entry", cache=self.name, key=repr(key))
            self._publish_sizes()
        return removed

    def clear(self) -> None:
        """Drop every stored value."""
        count = len(self._store)
        self._store.clear()
        self.logger.info("Cleared cache", cache=self.name, keys_count=count)
        self._publish_sizes()

    def contains(self, key: K) -> bool:
        validate_key(key)
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    async def warm(self, keys: Iterable[K]) -> Dict[K, bool]:
        """Compute many keys with bounded producer concurrency.

        Returns a mapping of key to whether a value is now cached. Producer
        failures are logged, not raised.
        """
        keys = list(keys)
        for key in keys:
            validate_key(key)

        semaphore = asyncio.Semaphore(self._warm_concurrency)
        unique_keys = list(dict.fromkeys(keys))

        async def _warm_one(key: K) -> bool:
            async with semaphore:
                try:
                    await self.get_or_compute(key)
                    return True
                except Exception as exc:
                    self.logger.warning(
                        "Cache warm failed for key",
                        cache=self.name,
                        key=repr(key),
                        error=str(exc)
                    )
                    return False

        outcomes = await asyncio.gather(*(_warm_one(key) for key in unique_keys))
        results = dict(zip(unique_keys, outcomes))

        self.logger.info(
            "Cache warm completed",
            cache=self.name,
            requested=len(unique_keys),
            warmed=sum(1 for ok in outcomes if ok),
            failed=sum(1 for ok in outcomes if not ok)
        )
        return results

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "name": self.name,
            "policy": self._store.policy.value,
            "entries": len(self._store),
            "in_flight": len(self._in_flight),
            **self._stats,
        }
