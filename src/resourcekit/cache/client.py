"""
Redis backend for the metadata cache.

Resolution is synchronous, so this wraps the blocking redis-py client.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import redis

logger = logging.getLogger(__name__)


class RedisCacheBackend:
    """
    Key-value backend on top of a redis.Redis connection.

    Usage:
        backend = RedisCacheBackend.from_url("redis://redis:6379/0")
        cache = MetadataCache(backend, prefix="app-v3")
    """

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str, **kwargs: Any) -> "RedisCacheBackend":
        """
        Create a backend from a Redis URL.

        The connection is lazy; an unreachable server only shows up as
        (absorbed) read/write errors.
        """
        logger.info(f"Using Redis cache backend: {redis_url}")
        return cls(redis.Redis.from_url(redis_url, encoding="utf-8", decode_responses=True, **kwargs))

    def get(self, key: str) -> Optional[str]:
        """Get value by key"""
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set value, with optional expiration in seconds"""
        return bool(self.client.set(key, value, ex=ttl))

    def close(self):
        """Close the underlying connection pool"""
        self.client.close()
