"""
Type definitions for Signal Relay.
"""

from .email import (
    EmailEnvelope,
    EmailTemplate,
    IntakeSubmission,
    PurchaseEmailParams,
    RelayEmail,
    SubscribeRequest,
)
from .payments import (
    CheckoutSessionRecord,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    DownloadGrant,
    FulfillmentIssue,
    FulfillmentResult,
    FulfillmentStatus,
    ManualFulfillmentRecord,
    ProductDetails,
    StripeEvent,
)
from .webhooks import (
    GhostPostStatus,
    GhostRelayResult,
    GhostWebhookBody,
    PublishEvent,
    SignedPayload,
    WebhookEnvelope,
)

__all__ = [
    # Email types
    "EmailEnvelope",
    "EmailTemplate",
    "IntakeSubmission",
    "PurchaseEmailParams",
    "RelayEmail",
    "SubscribeRequest",
    # Payment types
    "CheckoutSessionRecord",
    "CheckoutSessionRequest",
    "CheckoutSessionResponse",
    "DownloadGrant",
    "FulfillmentIssue",
    "FulfillmentResult",
    "FulfillmentStatus",
    "ManualFulfillmentRecord",
    "ProductDetails",
    "StripeEvent",
    # Webhook types
    "GhostPostStatus",
    "GhostRelayResult",
    "GhostWebhookBody",
    "PublishEvent",
    "SignedPayload",
    "WebhookEnvelope",
]
