# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Storage backends for the cache layer.

A backend stores already-serialized JSON strings with a TTL and supports
literal prefix deletion. Two implementations are provided:

- InMemoryCacheBackend: a process-local map guarded by an asyncio.Lock,
  with lazy expiry on read plus an explicit sweep().
- RedisCacheBackend: shared storage on top of RedisClient, expiry handled
  by Redis itself.

Example:
    backend = InMemoryCacheBackend()
    await backend.set("class:42:metrics:weekly", '{"total": 3}', 60)
    raw = await backend.get("class:42:metrics:weekly")
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol

from src.infrastructure.cache.redis_client import RedisClient
from src.utils.datetime import seconds_from, utc_now

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class CacheEntry:
    """A cached value with its absolute expiry.

    Attributes:
        key: Cache key.
        value: Serialized value.
        expires_at: Instant after which the entry is no longer served.
    """

    key: str
    value: str
    expires_at: datetime

    def is_live(self, now: datetime) -> bool:
        """Check whether the entry may still be served at ``now``."""
        return now < self.expires_at


class CacheBackend(Protocol):
    """Storage contract used by CacheLayer."""

    async def get(self, key: str) -> str | None:
        """Return the stored string, or None when missing or expired."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        """Store a string that expires after ``ttl_seconds``."""
        ...

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every entry whose key starts with ``prefix``."""
        ...

    async def sweep(self) -> int:
        """Drop expired entries, returning how many were removed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


class InMemoryCacheBackend:
    """Process-local cache backend.

    Entries live in a dict guarded by an asyncio.Lock. Expired entries are
    dropped when read and by sweep(), which the API process calls
    periodically so memory does not grow with keys nobody reads again.

    Attributes:
        clock: Callable returning the current time, injectable for tests.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        """Initialize an empty backend.

        Args:
            clock: Callable returning the current time.
        """
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not entry.is_live(self.clock()):
                del self._entries[key]
                return None
            return entry.value

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        expires_at = seconds_from(self.clock(), ttl_seconds)
        async with self._lock:
            self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

    async def delete_prefix(self, prefix: str) -> int:
        async with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    async def sweep(self) -> int:
        now = self.clock()
        async with self._lock:
            expired = [key for key, entry in self._entries.items() if not entry.is_live(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    async def close(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    """Cache backend storing entries in Redis.

    TTLs are applied with millisecond precision (``SET PX``), so Redis
    expires entries on its own and sweep() has nothing to do.
    """

    def __init__(self, client: RedisClient) -> None:
        """Initialize the backend.

        Args:
            client: Connected Redis client.
        """
        self._client = client

    async def get(self, key: str) -> str | None:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        await self._client.set(key, value, expire_ms=max(1, int(ttl_seconds * 1000)))

    async def delete_prefix(self, prefix: str) -> int:
        return await self._client.delete_prefix(prefix)

    async def sweep(self) -> int:
        return 0

    async def ping(self) -> bool:
        return await self._client.ping()

    async def close(self) -> None:
        await self._client.close()
