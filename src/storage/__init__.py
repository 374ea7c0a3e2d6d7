"""
Local state for Signal Relay: Redis connection, webhook dedup cache and
the manual fulfilment ledger.
"""

from .dedup import EventDeduplicator
from .fulfillment_ledger import FulfillmentLedger
from .redis_client import RedisClient

__all__ = [
    "EventDeduplicator",
    "FulfillmentLedger",
    "RedisClient",
]
