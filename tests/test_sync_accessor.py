"""
Unit tests for the threaded SyncMemoizingCacheAccessor.
"""

import threading
import time
import pytest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

from prometheus_client import CollectorRegistry

from memo_cache.sync_accessor import SyncMemoizingCacheAccessor
from shared.config import CacheConfig
from shared.errors import InvalidKeyError
from shared.logging import cache_name_var
from shared.metrics import CacheMetrics


class TestSyncGetOrCompute:
    """Single-threaded behavior."""

    def test_miss_then_hit(self):
        producer = MagicMock(return_value={"name": "john_doe"})
        accessor = SyncMemoizingCacheAccessor(producer)

        for _ in range(11):
            assert accessor.get_or_compute("user:42") == {"name": "john_doe"}

        producer.assert_called_once_with("user:42")

    def test_none_key_rejected(self):
        producer = MagicMock()
        accessor = SyncMemoizingCacheAccessor(producer)

        with pytest.raises(InvalidKeyError):
            accessor.get_or_compute(None)
        producer.assert_not_called()

    def test_unhashable_key_rejected(self):
        producer = MagicMock()
        accessor = SyncMemoizingCacheAccessor(producer)

        with pytest.raises(InvalidKeyError) as exc_info:
            accessor.get_or_compute({"not": "hashable"})

        assert exc_info.value.details == {"key_type": "dict"}
        producer.assert_not_called()

    def test_failure_is_not_cached(self):
        producer = MagicMock(side_effect=[KeyError("missing"), "found"])
        accessor = SyncMemoizingCacheAccessor(producer)

        with pytest.raises(KeyError):
            accessor.get_or_compute("k")
        assert not accessor.contains("k")

        assert accessor.get_or_compute("k") == "found"
        assert producer.call_count == 2
        assert accessor.get_stats()["producer_failures"] == 1

    def test_invalidate_set_and_clear(self):
        producer = MagicMock(side_effect=["v1", "v2"])
        accessor = SyncMemoizingCacheAccessor(producer)

        assert accessor.get_or_compute("k") == "v1"
        assert accessor.invalidate("k") is True
        assert accessor.get_or_compute("k") == "v2"

        accessor.set("k", "primed")
        assert accessor.get_or_compute("k") == "primed"

        accessor.clear()
        assert len(accessor) == 0


class TestSyncConcurrency:
    """Coalescing across threads."""

    def test_threads_share_one_computation(self):
        """Test threads missing the same key invoke the producer once."""
        started = threading.Event()
        release = threading.Event()
        calls = []

        def producer(key):
            calls.append(key)
            started.set()
            release.wait(timeout=5)
            return {"key": key}

        accessor = SyncMemoizingCacheAccessor(producer)

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(accessor.get_or_compute, "shared") for _ in range(8)]
            assert started.wait(timeout=5)
            time.sleep(0.05)
            release.set()
            results = [future.result(timeout=5) for future in futures]

        assert calls == ["shared"]
        assert all(result is results[0] for result in results)

    def test_threads_share_failure(self):
        """Test every waiting thread sees the producer's exception."""
        started = threading.Event()
        release = threading.Event()
        calls = []
        error = RuntimeError("backend down")

        def producer(key):
            calls.append(key)
            started.set()
            release.wait(timeout=5)
            raise error

        accessor = SyncMemoizingCacheAccessor(producer)

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(accessor.get_or_compute, "k") for _ in range(4)]
            assert started.wait(timeout=5)
            time.sleep(0.05)
            release.set()
            errors = [future.exception(timeout=5) for future in futures]

        assert all(exc is error for exc in errors)
        # Threads arriving after the failure retry the producer
        assert 1 <= len(calls) <= 4
        assert accessor.get_stats()["in_flight"] == 0

    def test_invalidate_during_in_flight_still_stores(self):
        """Test invalidating a key mid-computation leaves the computation to store."""
        started = threading.Event()
        release = threading.Event()
        calls = []

        def producer(key):
            calls.append(key)
            started.set()
            release.wait(timeout=5)
            return "fresh"

        accessor = SyncMemoizingCacheAccessor(producer)

        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(accessor.get_or_compute, "k")
            assert started.wait(timeout=5)

            assert accessor.invalidate("k") is False
            assert accessor.get_stats()["in_flight"] == 1

            release.set()
            assert future.result(timeout=5) == "fresh"

        assert accessor.contains("k")
        assert calls == ["k"]

    def test_different_keys_run_in_parallel(self):
        """Test a blocked producer for one key does not block another key."""
        release = threading.Event()

        def producer(key):
            if key == "slow":
                release.wait(timeout=5)
            return key

        accessor = SyncMemoizingCacheAccessor(producer)

        with ThreadPoolExecutor(max_workers=2) as pool:
            slow = pool.submit(accessor.get_or_compute, "slow")
            fast = pool.submit(accessor.get_or_compute, "fast")

            assert fast.result(timeout=2) == "fast"
            assert not slow.done()
            release.set()
            assert slow.result(timeout=5) == "slow"


class TestSyncConfiguration:
    """from_config and metrics."""

    def test_from_config_and_metrics(self):
        registry = CollectorRegistry()
        metrics = CacheMetrics(registry=registry)
        config = CacheConfig(name="lookup", eviction_policy="lru", max_entries=1)
        accessor = SyncMemoizingCacheAccessor.from_config(lambda key: key, config, metrics=metrics)

        accessor.get_or_compute("a")
        accessor.get_or_compute("a")
        accessor.get_or_compute("b")

        labels = {"cache": "lookup"}
        assert registry.get_sample_value("cache_hits_total", labels) == 1.0
        assert registry.get_sample_value("cache_misses_total", labels) == 2.0
        assert registry.get_sample_value("cache_entries", labels) == 1.0
        assert accessor.get_stats()["policy"] == "lru"

    def test_producer_logs_carry_cache_name(self):
        """Test the producer runs with the cache name bound for logging."""
        seen = []

        def producer(key):
            seen.append(cache_name_var.get())
            return key

        accessor = SyncMemoizingCacheAccessor(producer, name="lookup")
        accessor.get_or_compute("k")

        assert seen == ["lookup"]
        assert cache_name_var.get() is None
