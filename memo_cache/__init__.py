"""
Memoizing cache accessors.

Each accessor returns a stored value for a key when one exists and otherwise
computes it once through a producer callable, sharing that computation among
concurrent callers for the same key. Accessors own their store; construct one
per cache and pass it to the code that needs it.
"""

from .accessor import MemoizingCacheAccessor, validate_key
from .decorators import memoized
from .producers import HttpJsonProducer
from .store import CacheEntry, CacheStore, EvictionPolicy
from .sync_accessor import SyncMemoizingCacheAccessor

__all__ = [
    "CacheEntry",
    "CacheStore",
    "EvictionPolicy",
    "HttpJsonProducer",
    "MemoizingCacheAccessor",
    "SyncMemoizingCacheAccessor",
    "memoized",
    "validate_key",
]
