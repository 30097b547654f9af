"""Market data cache backed by Redis with an in-process fallback.

Entries are JSON documents stored under a namespaced key with a TTL. Every
write also lands in a local dictionary, so the application keeps serving
last-known data when Redis is down or was never configured.
"""

import json
import logging
import time
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from cryptofolio.core.config import settings
from cryptofolio.core.constants import MarketDataConstants

logger = logging.getLogger(__name__)


async def create_redis_client() -> "redis.Redis | None":
    """
    Create and verify a Redis client for market data caching.

    Returns:
        Connected client, or None when Redis is disabled or unreachable

    Note:
        Connection errors are logged and swallowed so the application can
        start without Redis and fall back to the in-process cache.
    """
    if not settings.REDIS_ENABLED:
        logger.info("Redis disabled by configuration, using in-process cache")
        return None

    client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT,
    )
    try:
        await client.ping()
    except RedisError as e:
        logger.warning(f"Failed to connect to Redis: {e}. Using in-process cache.")
        await client.aclose()
        return None

    logger.info(f"Connected to Redis at {settings.REDIS_URL}")
    return client


class MarketDataCache:
    """TTL cache for market data payloads.

    Example:
        >>> cache = MarketDataCache(await create_redis_client())
        >>> await cache.set("price:bitcoin", {"price": "95420"}, ttl_seconds=300)
        >>> await cache.get("price:bitcoin")
        {'price': '95420'}
    """

    def __init__(
        self,
        client: "redis.Redis | None" = None,
        *,
        namespace: str = MarketDataConstants.CACHE_NAMESPACE,
    ) -> None:
        """Initialize the cache.

        Args:
            client: Redis client, or None for in-process caching only
            namespace: Prefix for every Redis key
        """
        self._client = client
        self._namespace = namespace
        self._local: dict[str, tuple[float, str]] = {}

    @property
    def backend(self) -> str:
        """Name of the primary storage backend."""
        return "redis" if self._client is not None else "memory"

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def _get_local(self, key: str) -> str | None:
        entry = self._local.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= time.time():
            del self._local[key]
            return None
        return payload

    async def get(self, key: str) -> Any | None:
        """Get a cached value.

        Args:
            key: Cache key without namespace

        Returns:
            The decoded value, or None on a miss
        """
        payload: str | None = None
        if self._client is not None:
            try:
                payload = await self._client.get(self._key(key))
            except RedisError as e:
                logger.warning(f"Redis read failed for {key}: {e}")

        if payload is None:
            payload = self._get_local(key)
        if payload is None:
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, *, ttl_seconds: int) -> None:
        """Store a JSON-serializable value.

        Args:
            key: Cache key without namespace
            value: Value to store
            ttl_seconds: Time to live
        """
        await self.set_many({key: value}, ttl_seconds=ttl_seconds)

    async def set_many(self, values: dict[str, Any], *, ttl_seconds: int) -> None:
        """Store several values with the same TTL in one round trip."""
        if not values:
            return

        encoded = {key: json.dumps(value) for key, value in values.items()}
        expires_at = time.time() + ttl_seconds
        for key, payload in encoded.items():
            self._local[key] = (expires_at, payload)

        if self._client is None:
            return
        try:
            async with self._client.pipeline(transaction=False) as pipe:
                for key, payload in encoded.items():
                    pipe.set(self._key(key), payload, ex=ttl_seconds)
                await pipe.execute()
        except RedisError as e:
            logger.warning(f"Redis write failed for {len(encoded)} keys: {e}")

    async def clear(self) -> None:
        """Remove every entry in this cache's namespace."""
        self._local.clear()
        if self._client is None:
            return
        try:
            keys = [key async for key in self._client.scan_iter(match=self._key("*"))]
            if keys:
                await self._client.delete(*keys)
        except RedisError as e:
            logger.warning(f"Failed to clear Redis cache: {e}")

    async def ping(self) -> bool:
        """Check that the primary backend is usable."""
        if self._client is None:
            return True
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def aclose(self) -> None:
        """Close the Redis connection, if any."""
        if self._client is not None:
            await self._client.aclose()
