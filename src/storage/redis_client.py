"""
Redis client for the dedup cache and the fulfilment ledger.

This module provides an async Redis client with lazy connection and
graceful fallback behavior when Redis is unconfigured or unavailable.
"""

import logging
import time
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

# Seconds to wait before trying again after a failed connection
RECONNECT_COOLDOWN_SECONDS = 30.0


class RedisClient:
    """
    Async Redis client with connection management.

    get_client() returns None instead of raising when Redis is not
    configured or cannot be reached, so callers can fall back to local
    storage.
    """

    def __init__(self, redis_url: Optional[str] = None) -> None:
        self.redis_url = redis_url
        self._client: Optional[redis.Redis] = None
        self._is_available: bool = False
        self._connection_error: Optional[str] = None
        self._next_attempt_at: float = 0.0

    @property
    def is_configured(self) -> bool:
        return bool(self.redis_url)

    async def get_client(self) -> Optional[redis.Redis]:
        """
        Get or create a Redis client instance.

        Returns:
            Redis client if available, None if unconfigured or connection failed.
        """
        if not self.redis_url:
            return None
        if self._client is not None:
            return self._client
        if time.monotonic() < self._next_attempt_at:
            return None

        client = redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5.0,
            socket_timeout=5.0,
            retry_on_timeout=True,
        )
        try:
            await client.ping()
        except (redis.ConnectionError, redis.TimeoutError) as e:
            self._connection_error = f"Redis connection failed: {str(e)}"
            logger.warning(self._connection_error)
            self._is_available = False
            self._next_attempt_at = time.monotonic() + RECONNECT_COOLDOWN_SECONDS
            await client.aclose()
            return None

        self._client = client
        self._is_available = True
        self._connection_error = None
        logger.info("Redis connection established successfully")
        return self._client

    async def close(self) -> None:
        """Close the Redis connection and cleanup resources."""
        if self._client:
            try:
                await self._client.aclose()
                logger.info("Redis connection closed")
            except redis.RedisError as e:
                logger.warning(f"Error closing Redis connection: {str(e)}")
            finally:
                self._client = None
                self._is_available = False

    async def health_check(self) -> dict:
        """
        Check Redis connection health.

        Returns:
            Dictionary with health status information.
        """
        if not self.redis_url:
            return {"status": "not_configured", "connected": False}

        client = await self.get_client()
        if client is None:
            return {
                "status": "unavailable",
                "connected": False,
                "error": self._connection_error,
            }

        try:
            await client.ping()
        except redis.RedisError as e:
            self._is_available = False
            self._connection_error = str(e)
            return {
                "status": "unhealthy",
                "connected": False,
                "error": f"Connection error: {str(e)}",
            }
        return {"status": "healthy", "connected": True}

    @property
    def is_available(self) -> bool:
        """Check if Redis is currently available."""
        return self._is_available
