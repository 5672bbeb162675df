import logging
import redis.asyncio as redis
from datetime import datetime
from .config import settings
from typing import Optional

logger = logging.getLogger(__name__)


def cache_key_for_code(short_code: str) -> str:
    return f"short:{short_code}"


def cache_ttl_seconds(expiration_date: Optional[datetime], now: datetime) -> int:
    """Seconds to keep a cached URL. Never outlives the mapping itself."""
    ttl = settings.CACHE_DEFAULT_TTL_SECONDS
    if expiration_date is not None:
        ttl = min(ttl, int((expiration_date - now).total_seconds()))
    return ttl


class RedisClient:
    """Optional redirect cache. Every call is a no-op while disconnected."""

    def __init__(self):
        self.client: Optional[redis.Redis] = None

    async def connect(self, url: Optional[str] = None):
        url = url or settings.REDIS_URL
        if not url:
            logger.info("REDIS_URL not set, redirect cache disabled")
            return
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True
        )
        try:
            await client.ping()
        except redis.RedisError as e:
            logger.warning(f"Redis unavailable, redirect cache disabled: {e}")
            await client.aclose()
            return
        self.client = client

    async def close(self):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def get(self, key: str) -> Optional[str]:
        if not self.client:
            return None
        try:
            return await self.client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Redis GET {key} failed: {e}")
            return None

    async def set(self, key: str, value: str, ex: int = None):
        if not self.client:
            return
        try:
            await self.client.set(key, value, ex=ex)
        except redis.RedisError as e:
            logger.warning(f"Redis SET {key} failed: {e}")

    async def delete(self, key: str):
        if not self.client:
            return
        try:
            await self.client.delete(key)
        except redis.RedisError as e:
            logger.warning(f"Redis DELETE {key} failed: {e}")

redis_client = RedisClient()
