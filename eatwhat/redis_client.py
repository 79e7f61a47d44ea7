# eatwhat/redis_client.py
import hashlib
import json
import logging
import os
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Redis configuration
REDIS_URL = os.getenv("REDIS_URL")
if not REDIS_URL:
    REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
    REDIS_DB = int(os.getenv("REDIS_DB", "0"))

    if REDIS_PASSWORD:
        REDIS_URL = f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"
    else:
        REDIS_URL = f"redis://{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}"

EMBEDDING_CACHE_TTL = int(os.getenv("EMBEDDING_CACHE_TTL", "86400"))

# Global Redis client
_redis_client: Optional[redis.Redis] = None


async def init_redis():
    """Initialize Redis connection"""
    global _redis_client

    _redis_client = redis.from_url(
        REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
        health_check_interval=30,
        socket_connect_timeout=5,
        retry_on_timeout=True,
    )

    await _redis_client.ping()


async def close_redis():
    """Close Redis connection"""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


async def get_redis() -> redis.Redis:
    """Get the shared Redis client, connecting on first use"""
    if not _redis_client:
        await init_redis()
    return _redis_client


class RedisCache:
    """Utility class for common Redis caching operations"""

    def __init__(self, client: redis.Redis, prefix: str = "cache"):
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        """Generate namespaced key"""
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(self._key(key))

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Set value in cache with optional TTL"""
        if ttl:
            await self.client.setex(self._key(key), ttl, value)
        else:
            await self.client.set(self._key(key), value)


class EmbeddingCache:
    """
    Caches text embeddings keyed by a hash of the text.

    Failures are logged and reported as misses; the embedding API remains the
    source of truth.
    """

    def __init__(self, cache: RedisCache, ttl: int = EMBEDDING_CACHE_TTL):
        self.cache = cache
        self.ttl = ttl

    @staticmethod
    def _text_key(text: str, model: Optional[str]) -> str:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"{model or 'default'}:{digest}"

    async def get(self, text: str, model: Optional[str] = None) -> Optional[list[float]]:
        try:
            cached = await self.cache.get(self._text_key(text, model))
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Embedding cache read failed: {e}")
            return None

        if not cached:
            return None

        try:
            vector = json.loads(cached)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding corrupt embedding cache entry")
            return None
        return vector if isinstance(vector, list) else None

    async def set(self, text: str, vector: list[float], model: Optional[str] = None) -> None:
        try:
            await self.cache.set(self._text_key(text, model), json.dumps(vector), ttl=self.ttl)
        except (redis.RedisError, OSError) as e:
            logger.warning(f"Embedding cache write failed: {e}")


async def get_embedding_cache() -> EmbeddingCache:
    client = await get_redis()
    return EmbeddingCache(RedisCache(client, "embedding"))
