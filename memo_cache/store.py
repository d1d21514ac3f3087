"""
Backing store for memoizing cache accessors.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generic, Hashable, List, Optional, TypeVar, TYPE_CHECKING

from shared.errors import ConfigurationError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import CacheConfig

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class EvictionPolicy(str, Enum):
    """How a store drops entries."""
    NONE = "none"  # Keep every entry for the store's lifetime
    TTL = "ttl"    # Drop entries older than ttl_seconds on access
    LRU = "lru"    # Keep at most max_entries, dropping the least recently used


@dataclass
class CacheEntry(Generic[K, V]):
    """A stored value and the time it was written."""
    key: K
    value: V
    stored_at: float = field(default=0.0)


class CacheStore(Generic[K, V]):
    """Mapping from key to value with at most one value per key.

    A put for an existing key overwrites it. With the default policy entries
    are never evicted.
    """

    def __init__(
        self,
        policy: EvictionPolicy = EvictionPolicy.NONE,
        *,
        max_entries: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        try:
            policy = EvictionPolicy(policy)
        except ValueError:
            raise ConfigurationError(
                f"Unknown eviction policy: {policy!r}",
                details={"policy": str(policy)}
            ) from None

        if policy == EvictionPolicy.LRU and (max_entries is None or max_entries <= 0):
            raise ConfigurationError(
                "LRU eviction requires a positive max_entries",
                details={"max_entries": max_entries}
            )
        if policy == EvictionPolicy.TTL and (ttl_seconds is None or ttl_seconds <= 0):
            raise ConfigurationError(
                "TTL eviction requires a positive ttl_seconds",
                details={"ttl_seconds": ttl_seconds}
            )

        self.policy = policy
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[K, CacheEntry[K, V]]" = OrderedDict()

    @classmethod
    def from_config(cls, config: "CacheConfig") -> "CacheStore":
        """Build a store from cache settings."""
        return cls(
            config.eviction_policy,
            max_entries=config.max_entries,
            ttl_seconds=config.ttl_seconds,
        )

    def _is_expired(self, entry: CacheEntry) -> bool:
        if self.policy != EvictionPolicy.TTL:
            return False
        return self._clock() - entry.stored_at >= self.ttl_seconds

    def get(self, key: K, default: Any = None) -> Any:
        """Return the value stored for `key`, or `default`."""
        entry = self._entries.get(key)
        if entry is None:
            return default

        if self._is_expired(entry):
            del self._entries[key]
            return default

        if self.policy == EvictionPolicy.LRU:
            self._entries.move_to_end(key)
        return entry.value

    def put(self, key: K, value: V) -> None:
        """Store `value` for `key`, replacing any previous value."""
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())
        self._entries.move_to_end(key)

        if self.policy == EvictionPolicy.LRU:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: K) -> bool:
        """Remove `key`; return whether it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were dropped."""
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def keys(self) -> List[K]:
        self.purge_expired()
        return list(self._entries.keys())

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[arg-type]
        return entry is not None and not self._is_expired(entry)

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)
