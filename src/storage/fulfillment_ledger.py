"""
Durable ledger of purchases that need manual fulfilment.

The Stripe webhook always answers 200 once the signature is verified, so
a purchase that could not be fulfilled automatically would otherwise only
leave a log line. Every such case is appended here:

- Redis list `relay:manual_fulfillment` when Redis is available
- an append-only JSON-lines file otherwise
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import redis.asyncio as redis

from ..types.payments import ManualFulfillmentRecord
from .redis_client import RedisClient

logger = logging.getLogger(__name__)

LEDGER_KEY = "relay:manual_fulfillment"
DEFAULT_LEDGER_PATH = "./data/manual_fulfillment.jsonl"


class FulfillmentLedger:
    """Append-only store of ManualFulfillmentRecord entries."""

    def __init__(
        self,
        redis_client: Optional[RedisClient] = None,
        path: str = DEFAULT_LEDGER_PATH,
    ) -> None:
        self._redis_client = redis_client
        self.path = Path(path)
        self._file_lock = asyncio.Lock()

    async def _get_redis(self) -> Optional[redis.Redis]:
        if self._redis_client is None:
            return None
        return await self._redis_client.get_client()

    async def record(self, entry: ManualFulfillmentRecord) -> bool:
        """
        Append a record.

        Returns:
            True if the record was stored, False if every backend failed
        """
        line = entry.model_dump_json()

        client = await self._get_redis()
        if client is not None:
            try:
                await client.rpush(LEDGER_KEY, line)
                logger.info(
                    "Manual fulfilment recorded",
                    extra={"record_id": entry.id, "reason": entry.reason.value, "backend": "redis"},
                )
                return True
            except redis.RedisError as e:
                logger.warning(f"Redis ledger write error: {str(e)}, falling back to file")

        try:
            async with self._file_lock:
                await asyncio.to_thread(self._append_line, line)
        except OSError as e:
            logger.error(
                f"Could not write manual fulfilment record: {str(e)}",
                extra={"record_id": entry.id, "record": line},
            )
            return False

        logger.info(
            "Manual fulfilment recorded",
            extra={"record_id": entry.id, "reason": entry.reason.value, "backend": "file"},
        )
        return True

    def _append_line(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def recent(self, limit: int = 50) -> List[ManualFulfillmentRecord]:
        """Most recent records, oldest first."""
        client = await self._get_redis()
        if client is not None:
            try:
                lines = await client.lrange(LEDGER_KEY, -limit, -1)
                return [ManualFulfillmentRecord.model_validate_json(line) for line in lines]
            except redis.RedisError as e:
                logger.warning(f"Redis ledger read error: {str(e)}, falling back to file")

        if not self.path.exists():
            return []
        text = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
        lines = [line for line in text.splitlines() if line.strip()]
        return [ManualFulfillmentRecord.model_validate_json(line) for line in lines[-limit:]]
