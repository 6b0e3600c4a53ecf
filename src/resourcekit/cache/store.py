"""
Read-through metadata cache.

Pattern: cache-aside in front of pure computations.
1. Check the process-local memo (bounded LRU, optionally with a TTL)
2. Check the shared backend (Redis)
3. Otherwise compute, write to the backend, memoize

Backend failures never fail a request: they are logged and the value is
computed directly. Concurrent misses for one key inside a process are
collapsed (single-flight); across processes duplicate work is tolerated and
the last writer wins, which is safe because every computation is pure.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Optional, Protocol, TypeVar

from cachetools import Cache, LRUCache, TTLCache

from .keys import DEFAULT_PREFIX, CacheKey

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()

DEFAULT_MEMO_MAXSIZE = 1024


class CacheBackend(Protocol):
    """Minimal key-value contract of a shared cache backend."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> Any:
        ...


class MetadataCache:
    """
    Read-through cache for resource metadata.

    Usage:
        cache = MetadataCache(RedisCacheBackend.from_url("redis://redis:6379"), prefix="app-v3")

        key = cache.key(CacheKey.RESOLVED_RESOURCES, "users.abc123")
        fields = cache.remember(key, lambda: resolve_somehow())
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        *,
        prefix: str = DEFAULT_PREFIX,
        ttl: Optional[int] = None,
        maxsize: int = DEFAULT_MEMO_MAXSIZE,
        memo_ttl: Optional[int] = None,
    ):
        """
        Initialize cache.

        Args:
            backend: Shared backend; None keeps the cache process-local
            prefix: Namespace for every key
            ttl: Expiration for backend writes in seconds (None = never)
            maxsize: Maximum number of entries memoized in this process
            memo_ttl: Expiration of memoized entries (None = same as ttl)
        """
        self.backend = backend
        self.prefix = prefix
        self.ttl = ttl
        self.memo_ttl = memo_ttl if memo_ttl is not None else ttl

        # Bounded LRU memo; entries also expire when a TTL is configured
        if self.memo_ttl:
            self._memo: Cache = TTLCache(maxsize=maxsize, ttl=self.memo_ttl)
        else:
            self._memo = LRUCache(maxsize=maxsize)
        self._memo_guard = threading.Lock()

        # In-flight computations: key -> [lock, waiters]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "MetadataCache":
        """Build a cache from Settings (Redis backend when redis_url is set)."""
        backend = None
        if settings.redis_url:
            from .client import RedisCacheBackend
            backend = RedisCacheBackend.from_url(settings.redis_url)
        return cls(
            backend,
            prefix=settings.cache_prefix,
            ttl=settings.cache_ttl,
            maxsize=settings.memo_maxsize,
            memo_ttl=settings.memo_ttl,
        )

    def key(self, template: CacheKey, *replacements: Any) -> str:
        """Build a full key under this cache's prefix."""
        return template.resolve_key(*replacements, prefix=self.prefix)

    def remember(
        self,
        key: str,
        compute: Callable[[], T],
        *,
        dump: Optional[Callable[[T], Any]] = None,
        load: Optional[Callable[[Any], T]] = None,
    ) -> T:
        """
        Return the cached value for key, computing and storing it on a miss.

        Args:
            key: Full cache key
            compute: Pure function producing the value
            dump: Converts the value to JSON-compatible data for the backend
            load: Rebuilds the value from backend data
        """
        value = self._memo_get(key)
        if value is not _MISSING:
            return value

        lock = self._acquire(key)
        try:
            with lock:
                value = self._memo_get(key)
                if value is not _MISSING:
                    return value

                value = self._read(key, load)
                if value is _MISSING:
                    logger.debug(f"Cache MISS: {key}")
                    value = compute()
                    self._write(key, value, dump)
                else:
                    logger.debug(f"Cache HIT: {key}")

                with self._memo_guard:
                    self._memo[key] = value
                return value
        finally:
            self._release(key)

    def _memo_get(self, key: str) -> Any:
        with self._memo_guard:
            return self._memo.get(key, _MISSING)

    def _acquire(self, key: str) -> threading.Lock:
        with self._locks_guard:
            flight = self._locks.get(key)
            if flight is None:
                flight = self._locks[key] = [threading.Lock(), 0]
            flight[1] += 1
            return flight[0]

    def _release(self, key: str):
        with self._locks_guard:
            flight = self._locks[key]
            flight[1] -= 1
            if flight[1] == 0:
                del self._locks[key]

    def _read(self, key: str, load: Optional[Callable[[Any], Any]]) -> Any:
        if self.backend is None:
            return _MISSING
        try:
            raw = self.backend.get(key)
        except Exception as e:
            logger.warning(f"Cache read error for {key}: {e}")
            return _MISSING
        if raw is None:
            return _MISSING
        try:
            data = json.loads(raw)
            return load(data) if load else data
        except Exception as e:
            logger.warning(f"Cache decode error for {key}: {e}")
            return _MISSING

    def _write(self, key: str, value: Any, dump: Optional[Callable[[Any], Any]]):
        if self.backend is None:
            return
        try:
            payload = json.dumps(dump(value) if dump else value, ensure_ascii=False, default=str)
            self.backend.set(key, payload, ttl=self.ttl)
            logger.debug(f"Cached {key} (TTL: {self.ttl}s)")
        except Exception as e:
            logger.warning(f"Cache write error for {key}: {e}")
