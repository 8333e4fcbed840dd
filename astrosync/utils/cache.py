# astrosync/utils/cache.py
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional, Tuple

__all__ = ["TTLCache"]

_MISSING = object()


class TTLCache:
    """
    Bounded LRU cache whose entries expire ``ttl_seconds`` after they were set.

    Constructed and owned by the caller and passed to whatever needs it; there
    is no module-level instance. ``clock`` defaults to ``time.monotonic``.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        capacity: int = 1024,
        clock: Optional[Callable[[], float]] = None,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.ttl = float(ttl_seconds)
        self.capacity = int(capacity)
        self.clock = clock or time.monotonic
        self.store: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()
        self.lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self.lock:
            return len(self.store)

    def get(self, key: Hashable, default: Any = None) -> Any:
        now = self.clock()
        with self.lock:
            entry = self.store.get(key, _MISSING)
            if entry is _MISSING:
                self.misses += 1
                return default
            expires, value = entry
            if now >= expires:
                del self.store[key]
                self.misses += 1
                return default
            self.store.move_to_end(key)
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        expires = self.clock() + self.ttl
        with self.lock:
            self.store[key] = (expires, value)
            self.store.move_to_end(key)
            while len(self.store) > self.capacity:
                self.store.popitem(last=False)

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = factory()
            self.set(key, value)
        return value

    def purge(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self.clock()
        with self.lock:
            stale = [k for k, (exp, _) in self.store.items() if now >= exp]
            for k in stale:
                del self.store[k]
        return len(stale)

    def clear(self) -> None:
        with self.lock:
            self.store.clear()
