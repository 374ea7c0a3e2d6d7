"""
Payment and fulfilment types.

Covers the parsed Stripe event, the completed checkout session, the
product behind a price, the presigned download handed to the customer,
and the durable record written whenever a purchase cannot be fulfilled
automatically.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class StripeEvent(BaseModel):
    """Verified Stripe event envelope."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def object(self) -> Dict[str, Any]:
        obj = self.data.get("object")
        return obj if isinstance(obj, dict) else {}


class CheckoutSessionRecord(BaseModel):
    """The fields of a completed Checkout Session that fulfilment reads."""

    session_id: str
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    product_code: str = "UNKNOWN"
    price_id: Optional[str] = None
    amount_total: int = 0
    currency: str = "usd"

    @classmethod
    def from_stripe_object(cls, obj: Dict[str, Any]) -> "CheckoutSessionRecord":
        details = obj.get("customer_details") or {}
        metadata = obj.get("metadata") or {}
        return cls(
            session_id=obj.get("id") or "",
            customer_email=details.get("email") or obj.get("customer_email"),
            customer_name=details.get("name"),
            product_code=metadata.get("product_code") or "UNKNOWN",
            price_id=metadata.get("price_id"),
            amount_total=obj.get("amount_total") or 0,
            currency=obj.get("currency") or "usd",
        )

    @property
    def order_id(self) -> str:
        """Short customer-facing order reference."""
        return self.session_id[-8:].upper()


class ProductDetails(BaseModel):
    """A Stripe price together with its expanded product."""

    price_id: str
    product_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    unit_amount: Optional[int] = None
    currency: str = "usd"
    active: bool = True
    metadata: Dict[str, str] = Field(default_factory=dict)

    @property
    def product_code(self) -> Optional[str]:
        return self.metadata.get("product_code")

    @property
    def is_coming_soon(self) -> bool:
        return self.metadata.get("status") == "coming_soon"


class DownloadGrant(BaseModel):
    """Time-limited download for one purchased artifact. Never persisted."""

    model_config = ConfigDict(frozen=True)

    object_key: str
    file_name: str
    expires_at: datetime
    signed_url: str


class FulfillmentIssue(str, Enum):
    """Why a purchase needs manual follow-up."""

    MISSING_CUSTOMER_DATA = "missing_customer_data"
    PRODUCT_NOT_FOUND = "product_not_found"
    NO_DOWNLOAD_MAPPING = "no_download_mapping"
    EMAIL_FAILED = "email_failed"
    UNEXPECTED_ERROR = "unexpected_error"


class ManualFulfillmentRecord(BaseModel):
    """Durable note that a paid order was not fulfilled automatically."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    reason: FulfillmentIssue
    event_id: Optional[str] = None
    session_id: Optional[str] = None
    customer_email: Optional[str] = None
    product_code: Optional[str] = None
    price_id: Optional[str] = None
    detail: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class FulfillmentStatus(str, Enum):
    FULFILLED = "fulfilled"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    NEEDS_MANUAL = "needs_manual"


class FulfillmentResult(BaseModel):
    """Outcome of one Stripe webhook. The HTTP answer is always {"received": true}."""

    status: FulfillmentStatus
    event_type: Optional[str] = None
    record_id: Optional[str] = None
    message_id: Optional[str] = None


class CheckoutSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_id: str = Field(..., min_length=1, alias="priceId")


class CheckoutSessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., serialization_alias="sessionId")
    url: Optional[str] = None
