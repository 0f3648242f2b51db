"""
Roadmap Engine Board Cache

Bounded, time-stamped cache for board reads (tickets, pending proposals).

Entries expire after `ttl_seconds`; the oldest entry is evicted once
`max_entries` is reached. Callers invalidate explicitly after every
mutation instead of waiting for expiry.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL = 30
DEFAULT_MAX_ENTRIES = 256

_MISSING = object()


class TimedCache:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[Hashable, Tuple[float, Any]]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return default
            return value

    def stored_at(self, key: Hashable) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(key)
            return entry[0] if entry else None

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (self._clock(), value)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Board cache evicted %s", evicted)

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: Tuple) -> int:
        """Drop every tuple key starting with `prefix`. Returns the count."""
        n = len(prefix)
        with self._lock:
            doomed = [
                k for k in self._entries
                if isinstance(k, tuple) and k[:n] == prefix
            ]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def get_or_load(self, key: Hashable, loader) -> Any:
        """Return the cached value or await `loader()` and cache it."""
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = await loader()
            self.set(key, value)
        return value
