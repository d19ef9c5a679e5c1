"""Wallet ledger: referral commissions, rental income, and wallet spending."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, utcnow


class ReferralEarning(Base):
    """Commission credited to a referrer for a referred user's first paid order.

    referred_user_id is unique: a referred user earns their referrer at most once.
    """

    __tablename__ = "referral_earnings"

    earning_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    referrer_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), index=True, nullable=False)
    referred_user_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), unique=True, nullable=False)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.order_id"), nullable=False)
    amount_kobo: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


class WalletUsage(Base):
    """Wallet credit spent against an order."""

    __tablename__ = "wallet_usages"

    usage_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), index=True, nullable=False)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.order_id"), nullable=False)
    amount_kobo: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


class RentalEarning(Base):
    """Rental income released to a device owner's wallet.

    booking_id is unique: a booking's escrow is released at most once.
    """

    __tablename__ = "rental_earnings"

    earning_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), index=True, nullable=False)
    booking_id: Mapped[int] = mapped_column(ForeignKey("rental_bookings.rental_booking_id"), unique=True, nullable=False)
    amount_kobo: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
