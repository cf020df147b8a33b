# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-through cache layer with prefix invalidation.

CacheLayer sits in front of every expensive aggregate read. A read either
returns a live cached value or calls the compute function and stores its
result for ``ttl`` seconds. Writes that change data feeding a cached read
call invalidate() with a key prefix, so a single class write can drop
``class:42:*`` without tracking each derived key.

Keys are kept in two namespaces on the backend:

- ``live:<key>`` entries are served while fresh and removed by invalidate().
- ``stale:<key>`` entries hold the last successfully computed value for a
  longer TTL. They are only served when the compute function fails with
  TransientStoreError, so a leaderboard stays readable during a store
  outage as long as it was computed once.

Example:
    cache = CacheLayer(InMemoryCacheBackend())

    board = await cache.get_or_compute(
        CacheKeys.leaderboard(EntityScope.CLASS, "42", TimeGranularity.WEEKLY),
        300,
        lambda: engine.refresh_leaderboard(EntityScope.CLASS, "42", TimeGranularity.WEEKLY),
        model=RankedLeaderboard,
    )

    await cache.invalidate(CacheKeys.scope_prefix(EntityScope.CLASS, "42"))
"""

import json
import logging
from functools import lru_cache
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import TypeAdapter
from pydantic_core import to_jsonable_python

from src.core.exceptions import TransientStoreError
from src.infrastructure.cache.backends import CacheBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")

LIVE_NAMESPACE = "live:"
STALE_NAMESPACE = "stale:"


@lru_cache(maxsize=64)
def _adapter(model: Any) -> TypeAdapter:
    return TypeAdapter(model)


class CacheKeys:
    """Key shapes for cached aggregate reads.

    Every key derived from a scope starts with ``<scope>:<entity_id>:`` so
    invalidating that prefix drops all of the scope's cached reads.
    """

    @staticmethod
    def scope_prefix(scope: Any, entity_id: str) -> str:
        """Prefix covering every cached read of one scope entity."""
        return f"{_value(scope)}:{entity_id}:"

    @staticmethod
    def leaderboard(scope: Any, entity_id: str, granularity: Any) -> str:
        """Key of a ranked leaderboard."""
        return f"{_value(scope)}:{entity_id}:leaderboard:{_value(granularity)}"

    @staticmethod
    def class_metrics(class_id: str, granularity: Any) -> str:
        """Key of aggregated class metrics."""
        return f"class:{class_id}:metrics:{_value(granularity)}"

    @staticmethod
    def student_prefix(student_id: str) -> str:
        """Prefix covering every cached read of one student."""
        return f"student:{student_id}:"

    @staticmethod
    def mastery(student_id: str, class_id: str, topic_id: str) -> str:
        """Key of a student's topic mastery."""
        return f"student:{student_id}:mastery:{class_id}:{topic_id}"


def _value(item: Any) -> str:
    return str(getattr(item, "value", item))


class CacheLayer:
    """TTL-bounded read-through cache.

    Concurrent misses on the same key may both call the compute function;
    results are idempotent so the last write wins.

    Attributes:
        backend: Storage backend holding serialized entries.
        stale_ttl_seconds: Lifetime of last-known-good copies, 0 disables them.
    """

    def __init__(self, backend: CacheBackend, stale_ttl_seconds: int = 3600) -> None:
        """Initialize the cache layer.

        Args:
            backend: Storage backend.
            stale_ttl_seconds: Lifetime of last-known-good copies.
        """
        self.backend = backend
        self.stale_ttl_seconds = stale_ttl_seconds
        self._hits = 0
        self._misses = 0
        self._stale_hits = 0
        self._invalidations = 0

    async def get_or_compute(
        self,
        key: str,
        ttl_seconds: float,
        compute_fn: Callable[[], Awaitable[T]],
        *,
        model: Any = None,
    ) -> T:
        """Return the cached value for a key, computing it on a miss.

        Args:
            key: Cache key.
            ttl_seconds: Lifetime of a freshly computed value.
            compute_fn: Zero-argument coroutine function producing the value.
            model: Type used to rebuild cached values (a pydantic model or
                any type pydantic can validate). Plain JSON when omitted.

        Returns:
            The cached or freshly computed value.

        Raises:
            TransientStoreError: If computing failed and no last-known-good
                value exists.
        """
        raw = await self._read(LIVE_NAMESPACE + key)
        if raw is not None:
            self._hits += 1
            return self._decode(raw, model)

        self._misses += 1
        try:
            value = await compute_fn()
        except TransientStoreError:
            stale = await self._read(STALE_NAMESPACE + key)
            if stale is None:
                raise
            self._stale_hits += 1
            logger.warning("Serving last known value for %s after store failure", key)
            return self._decode(stale, model)

        payload = json.dumps(to_jsonable_python(value), ensure_ascii=False)
        await self._write(LIVE_NAMESPACE + key, payload, ttl_seconds)
        if self.stale_ttl_seconds > 0:
            await self._write(STALE_NAMESPACE + key, payload, self.stale_ttl_seconds)
        return value

    async def invalidate(self, key_prefix: str) -> int:
        """Drop every live entry whose key starts with a prefix.

        The match is a literal ``startswith``: ``invalidate("class:42")``
        also drops ``class:420:*``. Use CacheKeys.scope_prefix() to stop
        at the separator.

        Args:
            key_prefix: Key prefix to invalidate.

        Returns:
            Number of entries removed.

        Raises:
            TransientStoreError: If the backend could not be reached.
        """
        removed = await self.backend.delete_prefix(LIVE_NAMESPACE + key_prefix)
        self._invalidations += 1
        logger.debug("Invalidated %d cache entries with prefix %s", removed, key_prefix)
        return removed

    async def sweep(self) -> int:
        """Drop expired entries from the backend.

        Returns:
            Number of entries removed.
        """
        return await self.backend.sweep()

    async def close(self) -> None:
        """Close the backend."""
        await self.backend.close()

    def stats(self) -> dict[str, int]:
        """Get cache statistics.

        Returns:
            Dictionary with hit, miss, stale hit and invalidation counts.
        """
        return {
            "hits": self._hits,
            "misses": self._misses,
            "stale_hits": self._stale_hits,
            "invalidations": self._invalidations,
        }

    async def _read(self, key: str) -> str | None:
        try:
            return await self.backend.get(key)
        except TransientStoreError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            return None

    async def _write(self, key: str, payload: str, ttl_seconds: float) -> None:
        try:
            await self.backend.set(key, payload, ttl_seconds)
        except TransientStoreError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    @staticmethod
    def _decode(raw: str, model: Any) -> Any:
        data = json.loads(raw)
        if model is None:
            return data
        return _adapter(model).validate_python(data)
