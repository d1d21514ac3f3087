"""
Unit tests for shared configuration, errors, logging and metrics.
"""

import logging

import pydantic
import pytest
from prometheus_client import CollectorRegistry

from shared.config import CacheConfig, get_config
from shared.errors import (
    ConfigurationError,
    ErrorResponse,
    ExternalServiceError,
    InvalidKeyError,
    MemoCacheException,
    ValidationError,
)
from shared.logging import (
    add_correlation_context,
    add_service_context,
    clear_context,
    configure_logging,
    get_logger,
    set_cache_context,
    set_request_id,
)
from shared.metrics import get_cache_metrics


class TestConfig:
    """pydantic-settings configuration."""

    def test_defaults(self):
        config = CacheConfig()

        assert config.eviction_policy == "none"
        assert config.max_entries is None
        assert config.warm_concurrency == 5
        assert config.enable_metrics is True

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("MEMO_CACHE_NAME", "sessions")
        monkeypatch.setenv("MEMO_CACHE_EVICTION_POLICY", "lru")
        monkeypatch.setenv("MEMO_CACHE_MAX_ENTRIES", "250")

        config = get_config()

        assert config.name == "sessions"
        assert config.eviction_policy == "lru"
        assert config.max_entries == 250

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("MEMO_CACHE_TTL_SECONDS", "30")

        config = get_config(ttl_seconds=5)

        assert config.ttl_seconds == 5

    def test_rejects_unknown_policy(self):
        with pytest.raises(pydantic.ValidationError):
            CacheConfig(eviction_policy="fifo")


class TestErrors:
    """Exception hierarchy and response model."""

    def test_invalid_key_is_validation_error(self):
        error = InvalidKeyError()

        assert isinstance(error, ValidationError)
        assert isinstance(error, MemoCacheException)
        assert error.code == "INVALID_KEY"
        assert str(error) == "Invalid cache key"

    def test_to_response(self):
        error = ConfigurationError("bad ttl", details={"ttl_seconds": 0})

        response = error.to_response()

        assert isinstance(response, ErrorResponse)
        assert response.code == "CONFIGURATION_ERROR"
        assert response.message == "bad ttl"
        assert response.details == {"ttl_seconds": 0}
        assert response.trace_id is None

    def test_external_service_message(self):
        error = ExternalServiceError("catalog", "timeout")

        assert error.message == "catalog: timeout"
        assert error.details == {}


class TestLogging:
    """structlog processors and context."""

    def teardown_method(self):
        clear_context()

    def test_correlation_context(self):
        request_id = set_request_id()
        set_cache_context("users")

        event = add_correlation_context(None, "info", {"event": "Cache hit"})

        assert event["request_id"] == request_id
        assert event["cache"] == "users"

    def test_explicit_cache_field_kept(self):
        set_cache_context("users")

        event = add_correlation_context(None, "info", {"event": "x", "cache": "orders"})

        assert event["cache"] == "orders"

    def test_service_context_from_logger_name(self):
        event = add_service_context(None, "info", {"logger": "memo_cache.accessor"})

        assert event["service"] == "memo_cache"

    def test_configure_and_log(self, caplog):
        configure_logging("memo_cache", "debug")
        with caplog.at_level(logging.INFO, logger="memo_cache"):
            get_logger("memo_cache.test").info("Configured", answer=42)

        messages = [record.getMessage() for record in caplog.records]
        assert any('"event": "Configured"' in message for message in messages)
        assert any('"answer": 42' in message for message in messages)


class TestMetrics:
    """Prometheus collector."""

    def test_counters_per_cache(self):
        registry = CollectorRegistry()
        metrics = get_cache_metrics(registry=registry)

        metrics.record_hit("a")
        metrics.record_hit("a")
        metrics.record_miss("b")
        metrics.record_coalesced("b")
        metrics.update_sizes("b", entries=3, in_flight=1)

        assert registry.get_sample_value("cache_hits_total", {"cache": "a"}) == 2.0
        assert registry.get_sample_value("cache_misses_total", {"cache": "b"}) == 1.0
        assert registry.get_sample_value("cache_coalesced_total", {"cache": "b"}) == 1.0
        assert registry.get_sample_value("cache_entries", {"cache": "b"}) == 3.0
        assert registry.get_sample_value("cache_in_flight", {"cache": "b"}) == 1.0

    def test_unregistered_collectors_can_repeat(self):
        first = get_cache_metrics()
        second = get_cache_metrics()

        first.record_hit("x")
        second.record_hit("x")

        assert first.get_metric("cache_hits_total") is not second.get_metric("cache_hits_total")
