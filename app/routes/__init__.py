"""API routes for Signal Relay."""

from .checkout import router as checkout_router
from .ghost_webhook import router as ghost_webhook_router
from .health import router as health_router
from .intake import router as intake_router
from .stripe_webhook import router as stripe_webhook_router
from .subscribe import router as subscribe_router

__all__ = [
    "checkout_router",
    "ghost_webhook_router",
    "health_router",
    "intake_router",
    "stripe_webhook_router",
    "subscribe_router",
]
