"""Wallet balance and wallet payment schemas."""

from pydantic import BaseModel, ConfigDict, Field


class WalletBalanceResponse(BaseModel):
    """Schema for GET /wallet."""

    model_config = ConfigDict(from_attributes=True)

    balance_kobo: int = Field(description="Spendable credit in kobo")
    total_earned_kobo: int = Field(description="Lifetime referral and rental earnings in kobo")
    total_used_kobo: int = Field(description="Credit already spent in kobo")


class WalletPaymentRequest(BaseModel):
    """Schema for paying an order from wallet credit."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: int = Field(alias="orderId", description="Order being paid")
    amount_kobo: int = Field(alias="amountKobo", gt=0, description="Credit to spend, in kobo")
    service: str = Field(alias="serviceType", description="course | custom-offer | rental")
    product_id: int | None = Field(default=None, alias="productId", description="Course, offer, or booking id")
    payment_option: str | None = Field(default=None, alias="paymentOption", description="Custom-offer payment option")
    reference: str | None = Field(
        default=None,
        min_length=1,
        max_length=128,
        description="Client-chosen idempotency key, stored under the payer's WALLET- namespace; generated when omitted",
    )
