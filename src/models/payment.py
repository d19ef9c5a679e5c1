"""Immutable record of one gateway transaction attempt."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, utcnow

PAYMENT_STATUS_SUCCESS = "success"
PAYMENT_STATUS_FAILED = "failed"


class Payment(Base):
    """Payment row. Inserted once per genuine gateway transaction, never updated.

    The unique (reference, status) pair is the idempotency key: a
    reference can be recorded once as "success" and once as "failed".
    """

    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("paystack_reference", "paystack_status", name="uq_payments_reference_status"),
    )

    payment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.order_id"), index=True, nullable=False)
    paystack_reference: Mapped[str] = mapped_column(String(128), nullable=False)
    amount_kobo: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    paystack_status: Mapped[str] = mapped_column(String(32), nullable=False)
    gateway_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_option: Mapped[str | None] = mapped_column(String(32), nullable=True)
    discount_percentage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    wallet_usage_kobo: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
