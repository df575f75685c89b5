"""TTL-bounded cache for registry reads.

A :class:`CacheStore` is an explicit value: whoever builds the registry
client owns it and may share it between clients.  Entries are immutable
once written and expire lazily -- an entry older than the TTL is
evicted the next time it is read.
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

#: Default entry lifetime in seconds (5 minutes).
DEFAULT_TTL_SECONDS: float = 300.0


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    timestamp: float


class CacheStore:
    """Thread-safe ``key -> value`` cache with a fixed time-to-live.

    Args:
        ttl: Entry lifetime in seconds.
        clock: Zero-argument callable returning the current time in
            seconds.  Tests pass a fake clock to step past the TTL.

    Example::

        cache = CacheStore()
        key = CacheStore.make_key("getSkill", {"name": "pdf-tools"})
        if (hit := cache.get(key)) is None:
            hit = await fetch()
            cache.set(key, hit)
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    @staticmethod
    def make_key(operation: str, params: Mapping[str, Any] | None = None) -> str:
        """Derive the cache key for *operation* called with *params*.

        Parameters are canonicalized (sorted keys, compact separators)
        so that equal parameter sets always map to the same key.
        """
        canonical = json.dumps(dict(params or {}), sort_keys=True, separators=(",", ":"))
        return f"{operation}:{canonical}"

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value for *key*, or *default* if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if self._clock() - entry.timestamp >= self._ttl:
                del self._entries[key]
                return default
            return entry.data

    def set(self, key: str, data: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(data=data, timestamp=self._clock())

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key, _MISSING) is not _MISSING


_MISSING = object()
