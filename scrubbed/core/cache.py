"""Process-local key/value cache with per-entry expiry."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class TTLCache:
    """
    Key -> value store where every entry carries an absolute expiry.

    Expired entries are dropped lazily on read; there is no capacity limit.
    The cache knows nothing about its callers: each owner picks its own key
    namespace and decides when to invalidate.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._clock = clock

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return default
        return entry.value

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        marker = object()
        return self.get(key, marker) is not marker

    def __len__(self) -> int:
        return len(self._entries)
