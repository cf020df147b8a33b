# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Cache infrastructure.

This package provides the read-through CacheLayer used by every expensive
aggregate read, its storage backends, and the Redis client backing the
shared backend.

Example:
    from src.infrastructure.cache import CacheLayer, InMemoryCacheBackend

    cache = CacheLayer(InMemoryCacheBackend())
    value = await cache.get_or_compute("class:42:metrics:weekly", 60, compute)
    await cache.invalidate("class:42:")
"""

from src.infrastructure.cache.backends import (
    CacheBackend,
    CacheEntry,
    InMemoryCacheBackend,
    RedisCacheBackend,
)
from src.infrastructure.cache.layer import CacheKeys, CacheLayer
from src.infrastructure.cache.redis_client import RedisClient, RedisError

__all__ = [
    "CacheLayer",
    "CacheKeys",
    "CacheBackend",
    "CacheEntry",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "RedisClient",
    "RedisError",
]
