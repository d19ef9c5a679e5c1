"""Payment verification and Paystack webhook schemas."""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VerifyPaymentRequest(BaseModel):
    """Schema for POST /payments/verify (client redirect back from the gateway)."""

    model_config = ConfigDict(populate_by_name=True)

    reference: str = Field(min_length=1, description="Paystack transaction reference")
    product_id: int | None = Field(default=None, alias="id", description="Course, offer, or booking id")
    payment_option: str | None = Field(default=None, alias="paymentOption", description="Selected payment option")


class ChargeMetadata(BaseModel):
    """Metadata attached to a charge at checkout.

    Values are informational except orderId, service, and the product id;
    amounts declared here are never trusted for pricing.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    service: str | None = Field(default=None, description="course | custom-offer | rental")
    order_id: int | None = Field(default=None, alias="orderId")
    course_id: int | None = Field(default=None, alias="courseId")
    offer_id: int | None = Field(default=None, alias="offerId")
    booking_id: int | None = Field(default=None, alias="bookingId")
    payment_option: str | None = Field(default=None)
    discount_applied: Decimal | None = Field(default=None)
    original_amount_kobo: int | None = Field(default=None)
    wallet_usage_kobo: int = Field(default=0, ge=0)

    @field_validator("order_id", "course_id", "offer_id", "booking_id", "original_amount_kobo", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @field_validator("wallet_usage_kobo", mode="before")
    @classmethod
    def blank_to_zero(cls, value: Any) -> Any:
        if value in ("", None):
            return 0
        return value


class ChargeCustomer(BaseModel):
    """Customer block of a charge."""

    model_config = ConfigDict(extra="allow")

    email: str | None = Field(default=None)


class ChargeData(BaseModel):
    """Transaction object as returned by verify and sent in charge.* webhooks."""

    model_config = ConfigDict(extra="allow")

    reference: str = Field(min_length=1)
    amount: int = Field(ge=0, description="Amount in kobo")
    currency: str = Field(default="NGN")
    status: str = Field(default="")
    gateway_response: str | None = Field(default=None)
    customer: ChargeCustomer | None = Field(default=None)
    metadata: ChargeMetadata | None = Field(default=None)

    @field_validator("metadata", mode="before")
    @classmethod
    def non_object_metadata_is_none(cls, value: Any) -> Any:
        # Paystack sends "" when no metadata was attached
        if not isinstance(value, dict):
            return None
        return value

    @property
    def customer_email(self) -> str | None:
        return self.customer.email if self.customer else None


class WebhookEvent(BaseModel):
    """Envelope of a Paystack webhook delivery."""

    model_config = ConfigDict(extra="allow")

    event: str = Field(description="Event name, e.g. charge.success")
    data: dict[str, Any] = Field(default_factory=dict)


class ReconciliationData(BaseModel):
    """Outcome of a reconciliation as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    order_id: int = Field(description="Order the payment was applied to")
    reference: str = Field(description="Gateway reference")
    status: str = Field(description="Order status after reconciliation")
    amount_paid_to_date_kobo: int = Field(description="Running paid total")
    expected_amount_kobo: int = Field(description="Recomputed expected amount")
    already_processed: bool = Field(default=False, description="True if this reference was already recorded")


class VerifyPaymentResponse(BaseModel):
    """Schema for a successful verify call."""

    success: bool = Field(default=True)
    message: str = Field(description="Human-readable outcome")
    data: ReconciliationData | None = Field(default=None)


class PaymentFailureResponse(BaseModel):
    """Schema for a failed verify call."""

    success: bool = Field(default=False)
    message: str = Field(description="Reason the payment could not be confirmed")


class WebhookAck(BaseModel):
    """Acknowledgement body for webhook deliveries."""

    message: str = Field(description="Acknowledgement message")
