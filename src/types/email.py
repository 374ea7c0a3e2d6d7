"""
Email types shared by the newsletter relay and the SES mailer.
"""

from datetime import datetime
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RelayEmail(BaseModel):
    """Newsletter handed to the email-marketing backend for one post."""

    name: str
    subject: str
    html_body: str
    target_list_ids: Set[int] = Field(default_factory=set)
    send_at: Optional[datetime] = None

    @field_validator("send_at")
    @classmethod
    def whole_seconds(cls, v: Optional[datetime]) -> Optional[datetime]:
        return v.replace(microsecond=0) if v else v


class EmailTemplate(BaseModel):
    """Mautic email used as the newsletter template."""

    id: int
    subject: Optional[str] = None
    html: str = ""
    email_type: Optional[str] = None
    list_ids: List[int] = Field(default_factory=list)


class EmailEnvelope(BaseModel):
    """One transactional email as SES receives it."""

    model_config = ConfigDict(frozen=True)

    source: str
    to: List[str]
    subject: str
    text_body: str
    html_body: Optional[str] = None
    reply_to: List[str] = Field(default_factory=list)


class PurchaseEmailParams(BaseModel):
    to: str
    customer_name: Optional[str] = None
    product_name: str
    product_code: str
    download_url: str
    order_id: str
    amount: int = 0
    currency: str = "usd"


class IntakeSubmission(BaseModel):
    """Project inquiry from the site's intake form."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    company: str = ""
    project_type: str = Field(..., min_length=1, alias="projectType")
    budget: str = Field(..., min_length=1)
    timeline: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class SubscribeRequest(BaseModel):
    email: str
    name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("A valid email address is required")
        return v

    def split_name(self) -> "tuple[Optional[str], Optional[str]]":
        """First word is the first name, the remainder the last name."""
        if not self.name or not self.name.strip():
            return None, None
        first, _, last = self.name.strip().partition(" ")
        return first, (last.strip() or None)
