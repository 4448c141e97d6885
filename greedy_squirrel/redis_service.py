"""Redis-backed save store."""
import logging

import redis.asyncio as redis

from greedy_squirrel.config import settings


logger = logging.getLogger(__name__)


class RedisSaveStore:
    """Save records in Redis, one key per player, refreshed TTL on every write."""

    # Key prefixes
    SAVE_PREFIX = "save:"

    def __init__(self, redis_url: str | None = None, ttl_seconds: int | None = None):
        self._url = redis_url or settings.redis_url
        self._ttl = ttl_seconds or settings.save_ttl_seconds
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)
            logger.info("Connected save store to %s", self._url)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected")
        return self._client

    def _key(self, player_key: str) -> str:
        return f"{self.SAVE_PREFIX}{player_key}"

    async def read(self, key: str) -> str | None:
        """Returns None if no record exists (new player or expired)."""
        return await self.client.get(self._key(key))

    async def write(self, key: str, payload: str) -> None:
        await self.client.setex(self._key(key), self._ttl, payload)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))
