"""Lightweight in-memory TTL cache for the inline editor.

Backs the per-browser session registry: entries expire after a period of
inactivity, the store is bounded, and the owner is told about every entry
that leaves so it can release resources (unmount forms, drop effects).
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

EvictCallback = Callable[[Any, Any], None]


class TTLCache:
    """Thread-safe in-memory cache with sliding time-to-live (TTL) expiry.

    Each successful ``get`` pushes the entry's expiry forward by
    ``ttl_seconds``.  A maximum of ``maxsize`` entries are retained; when
    the cache is full the least recently used entry is evicted.

    Usage::

        cache = TTLCache(maxsize=128, ttl_seconds=300, on_evict=close)
        cache.set("my_key", session)
        value = cache.get("my_key")  # returns value or None if expired/missing
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: float = 300.0,
                 on_evict: EvictCallback | None = None) -> None:
        """Initialise the cache.

        Args:
            maxsize: Maximum number of entries to store (default 128).
            ttl_seconds: Idle seconds before an entry expires (default 300).
            on_evict: Called as ``on_evict(key, value)`` for every entry
                that expires, is evicted, or is deleted.  Runs outside
                the cache lock.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._maxsize = maxsize
        self._ttl = ttl_seconds
        self._on_evict = on_evict
        # Maps key -> (value, expires_at); order is least → most recently used
        self._store: "OrderedDict[Any, tuple[Any, float]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Any) -> Any | None:
        """Return cached value for *key*, or ``None`` if absent or expired.

        A hit refreshes the entry's expiry and marks it most recently used.
        """
        expired: list[tuple[Any, Any]] = []
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, expires_at = entry
            now = time.monotonic()
            if now > expires_at:
                del self._store[key]
                expired.append((key, value))
                self._misses += 1
                value = None
            else:
                self._store[key] = (value, now + self._ttl)
                self._store.move_to_end(key)
                self._hits += 1
        self._notify(expired)
        return value

    def set(self, key: Any, value: Any) -> None:
        """Store *value* under *key* with the configured TTL.

        If the cache is full, the least recently used entry is evicted
        before inserting the new one.
        """
        evicted: list[tuple[Any, Any]] = []
        with self._lock:
            evicted.extend(self._purge_expired())
            old = self._store.pop(key, None)
            if old is not None and old[0] is not value:
                evicted.append((key, old[0]))
            while len(self._store) >= self._maxsize:
                oldest_key, (oldest_value, _) = self._store.popitem(last=False)
                evicted.append((oldest_key, oldest_value))
            self._store[key] = (value, time.monotonic() + self._ttl)
        self._notify(evicted)

    def delete(self, key: Any) -> None:
        """Remove a single entry (no-op if not present)."""
        with self._lock:
            entry = self._store.pop(key, None)
        if entry is not None:
            self._notify([(key, entry[0])])

    def clear(self) -> None:
        """Remove all entries from the cache."""
        with self._lock:
            removed = [(k, v) for k, (v, _) in self._store.items()]
            self._store.clear()
            self._hits = 0
            self._misses = 0
        self._notify(removed)

    def purge(self) -> int:
        """Drop expired entries now; return how many went."""
        with self._lock:
            expired = self._purge_expired()
        self._notify(expired)
        return len(expired)

    def stats(self) -> dict[str, int]:
        """Return cache statistics.

        Returns:
            Dict with keys ``hits``, ``misses``, ``evictions`` and ``size``.
        """
        self.purge()
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "size": len(self._store),
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _purge_expired(self) -> list[tuple[Any, Any]]:
        # Caller holds the lock.
        now = time.monotonic()
        expired = [k for k, (_, exp) in self._store.items() if now > exp]
        return [(k, self._store.pop(k)[0]) for k in expired]

    def _notify(self, removed: list[tuple[Any, Any]]) -> None:
        if not removed:
            return
        with self._lock:
            self._evictions += len(removed)
        if self._on_evict is not None:
            for key, value in removed:
                self._on_evict(key, value)
