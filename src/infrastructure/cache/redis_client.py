# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Redis client backing the shared cache.

Every key is prefixed with ``{namespace}:`` so several deployments can
share one Redis database, and prefix deletion never reaches keys owned
by the Dramatiq broker. Values are stored as the strings the cache layer
already serialized.

Example:
    client = RedisClient(settings, namespace="gradepulse")
    await client.connect()

    await client.set("class:42:leaderboard:weekly", payload, expire_ms=300_000)
    await client.delete_prefix("class:42:")
"""

from collections.abc import Awaitable
from typing import TYPE_CHECKING, Optional, TypeVar

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError as BaseRedisError

from src.core.exceptions import TransientStoreError

if TYPE_CHECKING:
    from src.core.config.settings import Settings

T = TypeVar("T")

# Characters with special meaning in SCAN MATCH patterns
_GLOB_SPECIAL = "\\*?[]"


class RedisError(TransientStoreError):
    """Raised when Redis is unreachable or a command fails.

    Redis only holds cached copies, so any failure is transient from the
    pipeline's point of view.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        super().__init__(message, original_error=original_error)


def escape_pattern(value: str) -> str:
    """Escape glob metacharacters so a key prefix matches literally.

    Args:
        value: Literal key fragment.

    Returns:
        Fragment safe to embed in a SCAN MATCH pattern.
    """
    return "".join(f"\\{char}" if char in _GLOB_SPECIAL else char for char in value)


class RedisClient:
    """Async Redis client with namespace isolation.

    Attributes:
        namespace: Prefix prepended to every key.
    """

    def __init__(self, settings: "Settings", namespace: str | None = None) -> None:
        """Initialize the Redis client.

        Args:
            settings: Application settings containing Redis configuration.
            namespace: Key namespace, defaults to the cache namespace setting.
        """
        self._settings = settings
        self.namespace = namespace if namespace is not None else settings.cache.namespace
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = None

    async def connect(self) -> None:
        """Create the connection pool and check that Redis answers.

        Raises:
            RedisError: If Redis cannot be reached.
        """
        self._pool = ConnectionPool.from_url(
            self._settings.redis.url,
            max_connections=self._settings.redis.max_connections,
            decode_responses=True,
        )
        self._redis = Redis(connection_pool=self._pool)
        await self._run(self._redis.ping(), "Failed to connect to Redis")

    async def close(self) -> None:
        """Close the connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None

    def _connection(self) -> Redis:
        if self._redis is None:
            raise RedisError("Redis client not connected. Call connect() first.")
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @staticmethod
    async def _run(command: Awaitable[T], message: str) -> T:
        try:
            return await command
        except BaseRedisError as e:
            raise RedisError(message, e) from e

    async def set(self, key: str, value: str, expire_ms: Optional[int] = None) -> None:
        """Store a value, optionally expiring after ``expire_ms`` milliseconds."""
        redis = self._connection()
        await self._run(
            redis.set(self._key(key), value, px=expire_ms),
            f"Failed to set key: {key}",
        )

    async def get(self, key: str) -> Optional[str]:
        """Get the stored value of a key, None when absent."""
        redis = self._connection()
        return await self._run(redis.get(self._key(key)), f"Failed to get key: {key}")

    async def delete_prefix(self, prefix: str) -> int:
        """Delete all keys starting with a literal prefix.

        Keys are collected with SCAN, never KEYS, so a large keyspace does
        not block the server.

        Args:
            prefix: Key prefix, without namespace. Glob characters are
                matched literally.

        Returns:
            Number of keys deleted.

        Raises:
            RedisError: If the operation fails.
        """
        redis = self._connection()
        pattern = escape_pattern(self._key(prefix)) + "*"

        async def _delete() -> int:
            keys = [key async for key in redis.scan_iter(match=pattern)]
            if not keys:
                return 0
            return await redis.delete(*keys)

        return await self._run(_delete(), f"Failed to delete keys with prefix: {prefix}")

    async def ping(self) -> bool:
        """Check if Redis is reachable.

        Returns:
            True if Redis responds to ping, False otherwise.
        """
        if self._redis is None:
            return False
        try:
            await self._redis.ping()
            return True
        except BaseRedisError:
            return False
