"""
Stripe payments and purchase fulfilment for Signal Relay.
"""

from .fulfillment import PurchaseFulfillment
from .stripe_service import CHECKOUT_SESSION_COMPLETED, StripeService

__all__ = [
    "CHECKOUT_SESSION_COMPLETED",
    "PurchaseFulfillment",
    "StripeService",
]
