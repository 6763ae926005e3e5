"""Get-or-compute caches for password comparison results.

MemoryCache serves single-process hosts and tests. ValkeyCache shares
results across processes.
"""

import logging
import threading
import time
from typing import Any, Callable

from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)


class MemoryCache:
    """In-process TTL cache. Entries expire lazily on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, compute: Callable[[], Any], ttl_seconds: int) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] > now:
                return entry[1]

        # Compute outside the lock; bcrypt is slow
        value = compute()

        with self._lock:
            self._entries[key] = (self._clock() + ttl_seconds, value)
            self._purge_expired(now)
        return value

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (expires, _) in self._entries.items() if expires <= now]
        for k in expired:
            del self._entries[k]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class ValkeyCache:
    """Cache backed by Valkey. Values must be JSON-serializable."""

    KEY_PREFIX = "accounts:compare:"

    def __init__(self, valkey: ValkeyClient):
        self._valkey = valkey

    def _key(self, key: str) -> str:
        """Generate Valkey key for a cache entry."""
        return f"{self.KEY_PREFIX}{key}"

    def get(self, key: str, compute: Callable[[], Any], ttl_seconds: int) -> Any:
        cached = self._valkey.get_json(self._key(key))
        if cached is not None:
            return cached

        value = compute()
        self._valkey.set_json(self._key(key), value, expire_seconds=ttl_seconds)
        return value
