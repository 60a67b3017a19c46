"""
Redis Cache Module

Dashboard cache over redis.asyncio. The cache is optional: when redis is not
initialized or a command fails, reads miss and writes are dropped, so a
cache outage never fails a metrics request.
"""

import json
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from kpi_engine.config import get_settings

logger = structlog.get_logger(__name__)

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis(url: Optional[str] = None) -> Redis:
    """Initialize the Redis connection pool and verify it answers."""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()
    pool = ConnectionPool.from_url(
        url or settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=True,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
    except RedisError as e:
        logger.error("Redis connection failed", error=str(e))
        await pool.disconnect()
        raise

    _redis_pool, _redis_client = pool, client
    logger.info("Redis connection established")
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection closed")


def get_redis() -> Optional[Redis]:
    """Redis client, or None when the cache is not available"""
    return _redis_client


class CacheManager:
    """
    JSON cache with namespaced keys.

    Example:
        cache = CacheManager("dashboard", default_ttl=300)
        payload = await cache.get_or_set("30d:day:10", compute)
    """

    def __init__(self, namespace: str, default_ttl: int = 300, client: Optional[Redis] = None):
        self.namespace = namespace
        self.default_ttl = default_ttl
        self._client = client

    @property
    def client(self) -> Optional[Redis]:
        return self._client or get_redis()

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on a miss or when the cache is down."""
        client = self.client
        if client is None:
            return None
        try:
            value = await client.get(self._key(key))
        except RedisError as e:
            logger.warning("Cache read failed", key=self._key(key), error=str(e))
            return None
        if value is None:
            return None
        return json.loads(value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store a JSON-serializable value; False when it was not stored."""
        client = self.client
        if client is None:
            return False
        try:
            await client.setex(self._key(key), ttl or self.default_ttl, json.dumps(value, default=str))
        except RedisError as e:
            logger.warning("Cache write failed", key=self._key(key), error=str(e))
            return False
        return True

    async def invalidate_all(self) -> int:
        """Delete every key of the namespace."""
        client = self.client
        if client is None:
            return 0
        try:
            keys = [key async for key in client.scan_iter(match=f"{self.namespace}:*")]
            if not keys:
                return 0
            return await client.delete(*keys)
        except RedisError as e:
            logger.warning("Cache invalidation failed", namespace=self.namespace, error=str(e))
            return 0

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Get from cache or compute and cache.

        Args:
            key: Cache key within the namespace
            factory: Async function computing a JSON-serializable value
            ttl: Time-to-live, defaults to the namespace TTL

        Returns:
            Cached or computed value
        """
        value = await self.get(key)
        if value is not None:
            logger.debug("Cache hit", key=self._key(key))
            return value

        value = await factory()
        await self.set(key, value, ttl)
        return value


dashboard_cache = CacheManager("dashboard", default_ttl=get_settings().metrics.cache_ttl_seconds)
