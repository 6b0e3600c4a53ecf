"""
Cache module - key namespace, read-through store and Redis backend.
"""

from __future__ import annotations

from .client import RedisCacheBackend
from .keys import DEFAULT_PREFIX, CacheKey, cache_key
from .store import CacheBackend, MetadataCache

__all__ = [
    "DEFAULT_PREFIX",
    "CacheBackend",
    "CacheKey",
    "MetadataCache",
    "RedisCacheBackend",
    "cache_key",
]
