"""
Result Cache with TTL
=====================

Key/value cache used to memoize expensive aggregate queries and to hold the
"latest sample per ride" projection written by the sampler.

Backends:
- QueryCache: thread-safe in-memory cache (default)
- DatabaseResultCache: persistent cache stored in the cache_entries table
  (see database/cache_store.py)

The backend is chosen once at startup from CACHE_BACKEND.

Usage:
    from utils.cache import get_result_cache, generate_cache_key

    cache = get_result_cache()
    cache_key = generate_cache_key("crowd_history", rides="1,2,3", day="2026-10-18")

    result = cache.get_or_compute(
        key=cache_key,
        compute_fn=lambda: expensive_database_query(),
        ttl_seconds=6 * 3600
    )

Values must be JSON-serializable (numbers, strings, lists, dicts) so that every
backend can store them.
"""

import hashlib
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, Callable, Optional, TypeVar

from utils.config import CACHE_BACKEND, CACHE_DEFAULT_TTL_SECONDS, CACHE_MAX_ENTRIES
from utils.logger import logger

T = TypeVar('T')


class ResultCache(ABC):
    """
    Interface shared by all cache backends.

    Attributes:
        shared: True when other processes see the same entries
    """

    shared = False

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or expired."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store a value with a per-entry TTL (backend default when None)."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""

    @abstractmethod
    def clear(self) -> None:
        """Remove all entries and reset statistics."""

    @abstractmethod
    def get_stats(self) -> dict[str, Any]:
        """Hit/miss counters for monitoring."""

    @abstractmethod
    def purge_expired(self) -> int:
        """Delete every expired entry. Returns the number removed."""

    def get_or_compute(self, key: str, compute_fn: Callable[[], T],
                       ttl_seconds: Optional[int] = None) -> T:
        """
        Get cached value or compute and cache new value.

        The computation runs outside any backend lock so slow queries never
        block other readers.

        Args:
            key: Cache key
            compute_fn: Function to compute value if not cached
            ttl_seconds: TTL for the stored value

        Returns:
            Cached or computed value
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        result = compute_fn()
        self.set(key, result, ttl_seconds)
        return result


class QueryCache(ResultCache):
    """
    Thread-safe in-memory cache with per-entry TTL.

    Attributes:
        _cache: Dictionary storing (value, stored_at, ttl) tuples
        _lock: Threading lock for thread safety
        _ttl: Default time-to-live in seconds
        _max_entries: Size limit, oldest entry evicted when reached
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 10000):
        """
        Initialize cache with TTL.

        Args:
            ttl_seconds: Default time-to-live for cached entries (default 5 minutes)
            max_entries: Maximum number of entries before eviction
        """
        self._cache: dict[str, tuple[Any, float, float]] = {}
        self._lock = Lock()
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                value, stored_at, ttl = entry
                if time.time() - stored_at < ttl:
                    self._hits += 1
                    return value
                del self._cache[key]
            self._misses += 1
        return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            if key not in self._cache and len(self._cache) >= self._max_entries:
                self._evict_oldest()
            self._cache[key] = (value, time.time(), ttl)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def invalidate(self, key: Optional[str] = None) -> None:
        """
        Clear cache entry or all entries.

        Args:
            key: Specific key to invalidate, or None to clear all
        """
        if key is None:
            self.clear()
        else:
            self.delete(key)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            now = time.time()
            valid_entries = sum(
                1 for _, (_, stored_at, ttl) in self._cache.items()
                if now - stored_at < ttl
            )
            total = self._hits + self._misses
            return {
                "backend": "memory",
                "hits": self._hits,
                "misses": self._misses,
                "total_entries": len(self._cache),
                "valid_entries": valid_entries,
                "hit_rate": (self._hits / total) * 100 if total else 0.0,
                "ttl_seconds": self._ttl
            }

    def purge_expired(self) -> int:
        with self._lock:
            now = time.time()
            expired = [
                key for key, (_, stored_at, ttl) in self._cache.items()
                if now - stored_at >= ttl
            ]
            for key in expired:
                del self._cache[key]
        return len(expired)

    def _evict_oldest(self) -> None:
        # Caller holds the lock
        oldest_key = min(self._cache, key=lambda k: self._cache[k][1])
        del self._cache[oldest_key]
        logger.debug(f"Evicted oldest cache entry: {oldest_key}")


def generate_cache_key(endpoint: str, **params) -> str:
    """
    Generate consistent cache key from endpoint and parameters.

    Keys are deterministic - same inputs always produce same key.
    Parameter order doesn't matter (sorted before hashing).

    Args:
        endpoint: Logical query name (e.g., "crowd_history")
        **params: Query parameters (e.g., rides="1,2,3", day="2026-10-18")

    Returns:
        Cache key string in format "endpoint:hash"

    Example:
        >>> generate_cache_key("crowd_history", rides="1,2,3", day="2026-10-18")
        'crowd_history:a1b2c3d4'
    """
    param_str = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
    # MD5 for compact keys (not for security, just uniqueness)
    hash_value = hashlib.md5(param_str.encode()).hexdigest()[:8]
    return f"{endpoint}:{hash_value}"


def latest_sample_cache_key(ride_id: int) -> str:
    """Key of the latest-sample projection for one ride."""
    return f"ride_latest:{ride_id}"


_result_cache: Optional[ResultCache] = None
_cache_lock = Lock()


def create_result_cache(backend: str = CACHE_BACKEND) -> ResultCache:
    """
    Build the cache backend named by configuration.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend = (backend or 'memory').lower()
    if backend == 'memory':
        return QueryCache(ttl_seconds=CACHE_DEFAULT_TTL_SECONDS, max_entries=CACHE_MAX_ENTRIES)
    if backend == 'database':
        from database.cache_store import DatabaseResultCache
        return DatabaseResultCache(default_ttl_seconds=CACHE_DEFAULT_TTL_SECONDS)
    raise ValueError(f"Unknown CACHE_BACKEND '{backend}' (expected 'memory' or 'database')")


def get_result_cache() -> ResultCache:
    """
    Get the global result cache singleton.

    Thread-safe lazy initialization ensures only one cache instance exists.
    """
    global _result_cache
    if _result_cache is None:
        with _cache_lock:
            # Double-check locking pattern
            if _result_cache is None:
                _result_cache = create_result_cache()
                logger.info("Result cache initialized", extra={
                    "backend": CACHE_BACKEND,
                    "default_ttl_seconds": CACHE_DEFAULT_TTL_SECONDS
                })
    return _result_cache


def reset_result_cache() -> None:
    """
    Reset the global cache (useful for testing).

    The next get_result_cache() call builds a fresh backend.
    """
    global _result_cache
    with _cache_lock:
        _result_cache = None
