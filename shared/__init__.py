"""
Shared utilities for the memo-cache library.

This package aggregates the cross-cutting building blocks used by the
cache accessors:

- config: Cache configuration via pydantic-settings
- logging: Structured logging with trace correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses

Do not import from memo_cache into shared/.
"""
