import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from network_engine.config import settings
from network_engine.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RedisUnavailableError(ConnectionError):
    """Counter store could not be read or written."""


class FastRedisClient:
    """
    Pooled async Redis client backing the send counters.

    Plain key reads and writes log failures and return a neutral value.
    Counter reads and multi-key updates raise ``RedisUnavailableError`` so a
    missing counter store never reads as "nothing sent yet".
    """

    def __init__(self, url: str | None = None):
        self.url = url or settings.REDIS_URL
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            logger.info("Attempting Redis connection", url_preview=self.url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                self.url,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info(
                "Redis client initialized successfully",
                max_connections=settings.REDIS_MAX_CONNECTIONS,
            )

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        if self.client:
            await self.client.aclose()
        if self.pool:
            await self.pool.disconnect()
        self._initialized = False
        logger.info("Redis client closed")

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()

    async def get(self, key: str) -> str | None:
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except Exception as e:
            logger.error("Redis GET failed", key=key[:40], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        try:
            await self._ensure_initialized()
            if ttl_s:
                result = await self.client.setex(key, ttl_s, value)
            else:
                result = await self.client.set(key, value)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET failed", key=key[:40], error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._ensure_initialized()
            result = await self.client.delete(key)
            return result > 0
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:40], error=str(e))
            return False

    async def mget(self, *keys: str) -> list[str | None]:
        """Read several keys in one round trip."""
        try:
            await self._ensure_initialized()
            return list(await self.client.mget(keys))
        except Exception as e:
            logger.error("Redis MGET failed", keys=[key[:40] for key in keys], error=str(e))
            raise RedisUnavailableError("Redis MGET failed") from e

    async def incr_many_with_ttl(
        self, ttls: dict[str, int], extra_sets: dict[str, str] | None = None
    ) -> list[int]:
        """
        Increment every key in ``ttls`` and refresh its TTL in one MULTI block.

        ``extra_sets`` are plain SETs applied in the same transaction.
        Returns the new counter values in key order.
        """
        try:
            await self._ensure_initialized()
            async with self.client.pipeline(transaction=True) as pipe:
                for key, ttl_s in ttls.items():
                    pipe.incr(key)
                    pipe.expire(key, ttl_s)
                for key, value in (extra_sets or {}).items():
                    pipe.set(key, value)
                results = await pipe.execute()
            return [int(results[index * 2]) for index in range(len(ttls))]
        except Exception as e:
            logger.error("Redis INCR pipeline failed", keys=list(ttls), error=str(e))
            raise RedisUnavailableError("Redis INCR pipeline failed") from e

    async def decr_many(self, keys: list[str]) -> None:
        """Roll back a reservation made with ``incr_many_with_ttl``."""
        try:
            await self._ensure_initialized()
            async with self.client.pipeline(transaction=True) as pipe:
                for key in keys:
                    pipe.decr(key)
                await pipe.execute()
        except Exception as e:
            logger.error("Redis DECR pipeline failed", keys=keys, error=str(e))
            raise RedisUnavailableError("Redis DECR pipeline failed") from e

    async def zadd_with_ttl(self, key: str, member: str, score: float, ttl_s: int) -> None:
        try:
            await self._ensure_initialized()
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.zadd(key, {member: score})
                pipe.expire(key, ttl_s)
                await pipe.execute()
        except Exception as e:
            logger.error("Redis ZADD failed", key=key[:40], error=str(e))
            raise RedisUnavailableError("Redis ZADD failed") from e

    async def zrem(self, key: str, member: str) -> None:
        try:
            await self._ensure_initialized()
            await self.client.zrem(key, member)
        except Exception as e:
            logger.error("Redis ZREM failed", key=key[:40], error=str(e))
            raise RedisUnavailableError("Redis ZREM failed") from e

    async def zcount(self, key: str, min_score: float, max_score: float) -> int:
        try:
            await self._ensure_initialized()
            return int(await self.client.zcount(key, min_score, max_score))
        except Exception as e:
            logger.error("Redis ZCOUNT failed", key=key[:40], error=str(e))
            raise RedisUnavailableError("Redis ZCOUNT failed") from e

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        try:
            await self._ensure_initialized()
            return int(await self.client.zremrangebyscore(key, min_score, max_score))
        except Exception as e:
            logger.error("Redis ZREMRANGEBYSCORE failed", key=key[:40], error=str(e))
            raise RedisUnavailableError("Redis ZREMRANGEBYSCORE failed") from e


# Global instance
fast_redis = FastRedisClient()
