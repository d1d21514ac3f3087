"""
Decorator form of the memoizing cache accessors.
"""

import functools
import inspect
from typing import Callable, Optional, TYPE_CHECKING

from .accessor import MemoizingCacheAccessor
from .store import CacheStore
from .sync_accessor import SyncMemoizingCacheAccessor

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import CacheMetrics


def memoized(
    store: Optional[CacheStore] = None,
    name: Optional[str] = None,
    metrics: Optional["CacheMetrics"] = None,
):
    """Memoize a one-argument producer function by its argument.

    Coroutine functions and objects with an async ``__call__`` get a
    MemoizingCacheAccessor, plain callables a SyncMemoizingCacheAccessor.
    The accessor is exposed as ``wrapper.accessor`` for invalidation and stats.
    """
    def decorator(func: Callable) -> Callable:
        cache_name = name or getattr(func, "__qualname__", type(func).__qualname__)

        # Instances with an async __call__ (HttpJsonProducer) are async producers too
        if inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(getattr(func, "__call__", None)):
            accessor = MemoizingCacheAccessor(func, store=store, name=cache_name, metrics=metrics)

            @functools.wraps(func)
            async def async_wrapper(key):
                return await accessor.get_or_compute(key)

            async_wrapper.accessor = accessor
            return async_wrapper

        sync_accessor = SyncMemoizingCacheAccessor(func, store=store, name=cache_name, metrics=metrics)

        @functools.wraps(func)
        def sync_wrapper(key):
            return sync_accessor.get_or_compute(key)

        sync_wrapper.accessor = sync_accessor
        return sync_wrapper
    return decorator
