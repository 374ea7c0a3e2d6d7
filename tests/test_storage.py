"""
Tests for the dedup cache, the manual fulfilment ledger and the Redis client.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from src.storage.dedup import DEDUP_PREFIX, EventDeduplicator
from src.storage.fulfillment_ledger import LEDGER_KEY, FulfillmentLedger
from src.storage.redis_client import RedisClient
from src.types.payments import FulfillmentIssue, ManualFulfillmentRecord


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def redis_wrapper(client) -> MagicMock:
    """RedisClient stand-in whose get_client returns the given redis mock."""
    wrapper = MagicMock(spec=RedisClient)
    wrapper.get_client = AsyncMock(return_value=client)
    return wrapper


def record(**overrides) -> ManualFulfillmentRecord:
    fields = dict(
        reason=FulfillmentIssue.NO_DOWNLOAD_MAPPING,
        event_id="evt_1",
        session_id="cs_test_1",
        customer_email="buyer@example.com",
        product_code="PROD.009",
        detail="no S3 object",
    )
    fields.update(overrides)
    return ManualFulfillmentRecord(**fields)


class TestEventDeduplicatorInMemory:
    @pytest.mark.asyncio
    async def test_first_claim_wins(self):
        dedup = EventDeduplicator()
        assert await dedup.claim("stripe:evt_1") is True
        assert await dedup.claim("stripe:evt_1") is False
        assert await dedup.claim("stripe:evt_2") is True

    @pytest.mark.asyncio
    async def test_claim_expires_after_ttl(self):
        clock = FakeClock()
        dedup = EventDeduplicator(ttl_seconds=60, clock=clock)

        assert await dedup.claim("k") is True
        clock.now += 59
        assert await dedup.claim("k") is False
        clock.now += 2
        assert await dedup.claim("k") is True

    @pytest.mark.asyncio
    async def test_release_allows_reclaim(self):
        dedup = EventDeduplicator()
        await dedup.claim("k")
        await dedup.release("k")
        assert await dedup.claim("k") is True

    @pytest.mark.asyncio
    async def test_unconfigured_redis_uses_memory(self):
        dedup = EventDeduplicator(RedisClient(None))
        assert await dedup.claim("k") is True
        assert await dedup.claim("k") is False


class TestEventDeduplicatorRedis:
    @pytest.mark.asyncio
    async def test_claim_uses_set_nx_ex(self):
        client = AsyncMock()
        client.set.return_value = True
        dedup = EventDeduplicator(redis_wrapper(client), ttl_seconds=120)

        assert await dedup.claim("ghost:p1") is True
        client.set.assert_awaited_once_with(f"{DEDUP_PREFIX}ghost:p1", "1", nx=True, ex=120)

    @pytest.mark.asyncio
    async def test_existing_key_is_duplicate(self):
        client = AsyncMock()
        client.set.return_value = None
        dedup = EventDeduplicator(redis_wrapper(client))
        assert await dedup.claim("ghost:p1") is False

    @pytest.mark.asyncio
    async def test_redis_error_falls_back_to_memory(self):
        client = AsyncMock()
        client.set.side_effect = redis.ConnectionError("down")
        dedup = EventDeduplicator(redis_wrapper(client))

        assert await dedup.claim("k") is True
        assert await dedup.claim("k") is False

    @pytest.mark.asyncio
    async def test_release_deletes_key(self):
        client = AsyncMock()
        dedup = EventDeduplicator(redis_wrapper(client))
        await dedup.release("k")
        client.delete.assert_awaited_once_with(f"{DEDUP_PREFIX}k")


class TestFulfillmentLedger:
    @pytest.mark.asyncio
    async def test_file_backend_appends_json_lines(self, tmp_path):
        path = tmp_path / "nested" / "ledger.jsonl"
        ledger = FulfillmentLedger(path=str(path))

        assert await ledger.record(record(event_id="evt_1")) is True
        assert await ledger.record(record(event_id="evt_2")) is True

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["event_id"] == "evt_1"
        assert first["reason"] == "no_download_mapping"

    @pytest.mark.asyncio
    async def test_recent_reads_back_from_file(self, tmp_path):
        ledger = FulfillmentLedger(path=str(tmp_path / "ledger.jsonl"))
        for i in range(3):
            await ledger.record(record(event_id=f"evt_{i}"))

        recent = await ledger.recent(limit=2)
        assert [r.event_id for r in recent] == ["evt_1", "evt_2"]

    @pytest.mark.asyncio
    async def test_recent_without_file_is_empty(self, tmp_path):
        ledger = FulfillmentLedger(path=str(tmp_path / "missing.jsonl"))
        assert await ledger.recent() == []

    @pytest.mark.asyncio
    async def test_redis_backend_pushes_to_list(self, tmp_path):
        client = AsyncMock()
        ledger = FulfillmentLedger(redis_wrapper(client), path=str(tmp_path / "ledger.jsonl"))

        entry = record()
        assert await ledger.record(entry) is True
        client.rpush.assert_awaited_once_with(LEDGER_KEY, entry.model_dump_json())
        assert not (tmp_path / "ledger.jsonl").exists()

    @pytest.mark.asyncio
    async def test_redis_error_falls_back_to_file(self, tmp_path):
        client = AsyncMock()
        client.rpush.side_effect = redis.ConnectionError("down")
        path = tmp_path / "ledger.jsonl"
        ledger = FulfillmentLedger(redis_wrapper(client), path=str(path))

        assert await ledger.record(record()) is True
        assert path.exists()

    @pytest.mark.asyncio
    async def test_unwritable_path_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        ledger = FulfillmentLedger(path=str(blocker / "ledger.jsonl"))
        assert await ledger.record(record()) is False


class TestRedisClient:
    @pytest.mark.asyncio
    async def test_unconfigured_client(self):
        client = RedisClient(None)
        assert client.is_configured is False
        assert await client.get_client() is None
        assert await client.health_check() == {"status": "not_configured", "connected": False}
