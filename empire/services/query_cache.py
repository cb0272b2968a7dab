"""
Bounded query cache with TTL for Empire.

Caches per-user read results (day boards, progress) for a
short freshness window, with:
- TTL (time-to-live) for automatic expiration
- Maximum size limit with LRU eviction (by access time, not creation time)
- Invalidation that marks an entry stale instead of dropping it, so the
  last known value can still be peeked at while a reload is pending

Mutations that the client should see immediately go through
``optimistic_mutation``: snapshot the cached value, apply the intended
change, run the write, restore the snapshot on failure, and invalidate the
key once the write settles either way.

Usage:
    cache = QueryCache(default_ttl=settings.QUERY_CACHE_TTL)
    board = cache.get_or_load(("missions", user_id, day), load_board)

    optimistic_mutation(
        cache,
        ("missions", user_id, day),
        apply=lambda board: board.with_completed(mission_id),
        run=lambda: service.complete_mission(user_id, mission_id),
    )
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


@dataclass
class CacheEntry:
    """A cached value with TTL."""

    value: Any
    created_at: float
    accessed_at: float  # For LRU eviction
    ttl: float  # seconds
    stale: bool = False


class QueryCache:
    """
    Bounded query cache with TTL and stale-on-invalidate semantics.

    Thread-safe: FastAPI runs sync route handlers in a threadpool.
    """

    DEFAULT_TTL = 15  # seconds
    MAX_SIZE = 1000

    def __init__(
        self,
        max_size: int = MAX_SIZE,
        default_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the query cache.

        Args:
            max_size: Maximum number of entries
            default_ttl: Default time-to-live in seconds (0 disables caching)
            clock: Monotonic time source, injectable for tests
        """
        self._store: OrderedDict[Hashable, CacheEntry] = OrderedDict()
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._lock = threading.Lock()

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > entry.ttl

    def _lookup(self, key: Hashable, *, allow_stale: bool) -> Any:
        now = self._clock()
        entry = self._store.get(key)
        if entry is None:
            return _MISSING
        if self._is_expired(entry, now):
            del self._store[key]
            return _MISSING
        if entry.stale and not allow_stale:
            return _MISSING
        entry.accessed_at = now
        self._store.move_to_end(key)
        return entry.value

    def get(self, key: Hashable, default: Any = None) -> Any:
        """
        Get a fresh value.

        Returns:
            The cached value if present, not expired and not stale; ``default`` otherwise
        """
        with self._lock:
            value = self._lookup(key, allow_stale=False)
        return default if value is _MISSING else value

    def peek(self, key: Hashable, default: Any = None) -> Any:
        """Get a value even if it has been invalidated (but not if it expired)."""
        with self._lock:
            value = self._lookup(key, allow_stale=True)
        return default if value is _MISSING else value

    def set(self, key: Hashable, value: Any, ttl: float | None = None) -> bool:
        """
        Store a fresh value.

        Args:
            key: Cache key, usually a tuple like ("missions", user_id, day)
            value: Value to cache
            ttl: Time-to-live in seconds (uses default if None)

        Returns:
            True if stored, False if caching is disabled
        """
        effective_ttl = self._default_ttl if ttl is None else ttl
        if effective_ttl <= 0 or self._max_size <= 0:
            return False

        with self._lock:
            now = self._clock()
            self._cleanup_expired(now)

            if key in self._store:
                del self._store[key]
            elif len(self._store) >= self._max_size:
                self._evict_lru()

            self._store[key] = CacheEntry(
                value=value,
                created_at=now,
                accessed_at=now,
                ttl=effective_ttl,
            )
            return True

    def get_or_load(
        self,
        key: Hashable,
        loader: Callable[[], T],
        ttl: float | None = None,
    ) -> T:
        """
        Return the fresh cached value or load, cache and return a new one.

        The loader runs outside the lock; concurrent misses may both load.
        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        loaded = loader()
        self.set(key, loaded, ttl)
        return loaded

    def invalidate(self, key: Hashable) -> bool:
        """
        Mark a key stale so the next ``get_or_load`` reloads it.

        Returns:
            True if the key was cached
        """
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            entry.stale = True
            return True

    def evict(self, key: Hashable) -> bool:
        """Drop a key entirely."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def _cleanup_expired(self, now: float) -> None:
        """Remove all expired entries."""
        expired = [key for key, entry in self._store.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._store[key]

    def _evict_lru(self) -> bool:
        """Evict the least recently used entry."""
        if not self._store:
            return False
        # First item is least recently used (move_to_end on access)
        lru_key = next(iter(self._store))
        del self._store[lru_key]
        return True

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def size(self) -> int:
        """Get current number of unexpired entries."""
        with self._lock:
            self._cleanup_expired(self._clock())
            return len(self._store)


def optimistic_mutation(
    cache: QueryCache,
    key: Hashable,
    *,
    apply: Callable[[Any], Any],
    run: Callable[[], T],
) -> T:
    """
    Run a write with an optimistic cache update.

    1. Snapshot the cached value for ``key`` (if any).
    2. Store ``apply(snapshot)`` so readers see the intended state at once.
    3. Run the write.
    4. On failure restore the snapshot and re-raise.
    5. On settle (success or failure) invalidate ``key``.

    Args:
        cache: Query cache holding the value
        key: Cache key affected by the write
        apply: Pure function from the snapshot to the optimistic value
        run: The write itself

    Returns:
        Whatever ``run`` returns
    """
    snapshot = cache.peek(key, _MISSING)
    if snapshot is not _MISSING:
        cache.set(key, apply(snapshot))

    try:
        return run()
    except Exception:
        if snapshot is not _MISSING:
            cache.set(key, snapshot)
            logger.info("Optimistic update rolled back for %s", key[0] if isinstance(key, tuple) else key)
        raise
    finally:
        cache.invalidate(key)


__all__ = ["CacheEntry", "QueryCache", "optimistic_mutation"]
