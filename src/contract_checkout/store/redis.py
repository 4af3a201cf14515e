"""Redis snapshot backend."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contract_checkout.config.settings import StoreConfig


class RedisStore:
    """Redis-based snapshot store using redis-py.

    Keys expire after the staleness threshold; an expired snapshot would
    be discarded on resume anyway.
    """

    def __init__(self, config: StoreConfig) -> None:
        """Initialize Redis store.

        Args:
            config: Store configuration with Redis connection details.
        """
        self._config = config
        self._redis = None

    async def connect(self) -> None:
        """Connect to Redis.

        Raises:
            ConnectionError: If Redis connection fails.
        """
        from redis.asyncio import Redis

        self._redis = Redis.from_url(
            self._config.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=self._config.max_connections,
        )

        try:
            await self._redis.ping()
        except Exception as e:
            msg = f"Failed to connect to Redis at {self._config.url}"
            raise ConnectionError(msg) from e

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> str | None:
        assert self._redis is not None
        return await self._redis.get(key)

    async def set(self, key: str, value: str) -> None:
        assert self._redis is not None
        await self._redis.setex(key, self._config.stale_after_seconds, value)

    async def delete(self, key: str) -> None:
        assert self._redis is not None
        await self._redis.delete(key)
