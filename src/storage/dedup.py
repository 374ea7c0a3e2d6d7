"""
Duplicate-delivery protection for inbound webhooks.

Ghost and Stripe both redeliver webhooks they consider failed, and a slow
answer can look like a failure. Each event is claimed once under a key;
later deliveries with the same key inside the TTL window are reported as
duplicates.

Redis (SET NX EX) is used when available so the claim holds across
workers; otherwise a lock-guarded in-memory map is used.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional

import redis.asyncio as redis

from .redis_client import RedisClient

logger = logging.getLogger(__name__)

DEDUP_PREFIX = "relay:dedup:"
DEFAULT_DEDUP_TTL = 86400  # 24 hours


class EventDeduplicator:
    """
    Claims webhook event keys for a limited time.

    Usage:
        if not await dedup.claim("stripe:evt_123"):
            return duplicate_response
        try:
            ...
        except RelayError:
            await dedup.release("stripe:evt_123")
            raise
    """

    def __init__(
        self,
        redis_client: Optional[RedisClient] = None,
        ttl_seconds: int = DEFAULT_DEDUP_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._redis_client = redis_client
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._fallback: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def _get_redis(self) -> Optional[redis.Redis]:
        if self._redis_client is None:
            return None
        return await self._redis_client.get_client()

    async def claim(self, key: str) -> bool:
        """
        Atomically claim an event key.

        Returns:
            True if this is the first delivery inside the window, False for a duplicate
        """
        client = await self._get_redis()
        if client is not None:
            try:
                claimed = await client.set(
                    f"{DEDUP_PREFIX}{key}", "1", nx=True, ex=self.ttl_seconds
                )
                return bool(claimed)
            except redis.RedisError as e:
                logger.warning(f"Redis dedup claim error: {str(e)}, falling back to memory")

        async with self._lock:
            now = self._clock()
            self._evict_expired(now)
            if key in self._fallback:
                return False
            self._fallback[key] = now + self.ttl_seconds
            return True

    async def release(self, key: str) -> None:
        """Forget a claim so a redelivery of the event is processed again."""
        client = await self._get_redis()
        if client is not None:
            try:
                await client.delete(f"{DEDUP_PREFIX}{key}")
            except redis.RedisError as e:
                logger.warning(f"Redis dedup release error: {str(e)}")

        async with self._lock:
            self._fallback.pop(key, None)

    def _evict_expired(self, now: float) -> None:
        expired = [k for k, expires_at in self._fallback.items() if expires_at <= now]
        for k in expired:
            del self._fallback[k]
