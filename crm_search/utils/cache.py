"""
In-memory LRU cache with per-entry expiry, used for tenant facet menus.
"""

import time
from collections import OrderedDict
from typing import Any, NamedTuple


class _Entry(NamedTuple):
    value: Any
    expires_at: float | None


class LRUCache:
    """Least-recently-used cache; the oldest entry is evicted once ``max_size`` is exceeded."""

    def __init__(self, max_size: int = 1000):
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._max_size = max_size

    def get(self, key: str) -> Any | None:
        """Return a live entry and mark it most recently used; expired entries are dropped."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and time.monotonic() >= entry.expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value; ``ttl`` is in seconds and a falsy ttl never expires."""
        expires_at = time.monotonic() + ttl if ttl else None
        self._entries[key] = _Entry(value, expires_at)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
