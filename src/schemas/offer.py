"""Custom offer schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OfferResponse(BaseModel):
    """Schema for a custom offer as shown to its recipient."""

    model_config = ConfigDict(from_attributes=True)

    offer_id: int = Field(description="Offer id")
    order_id: int = Field(description="Order the offer prices")
    offer_amount_in_kobo: int = Field(description="Full offer price in kobo")
    description: str | None = Field(default=None, description="Offer description")
    status: str = Field(description="pending | accepted | rejected | expired")
    expires_at: datetime | None = Field(default=None, description="When a pending offer lapses")
    rejection_reason: str | None = Field(default=None, description="Reason given when rejected")


class OfferAction(str, Enum):
    """What the recipient does with a pending offer."""

    ACCEPT = "accept"
    REJECT = "reject"


class OfferActionRequest(BaseModel):
    """Optional body for accepting or rejecting an offer."""

    model_config = ConfigDict(populate_by_name=True)

    rejection_reason: str | None = Field(
        default=None,
        alias="rejectionReason",
        max_length=2000,
        description="Why the offer was rejected; ignored when accepting",
    )
