"""Hardware rentals and time-boxed bookings."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin

BOOKING_PAYMENT_UNPAID = "unpaid"


class Rental(TimestampMixin, Base):
    """A physical device offered for rent."""

    __tablename__ = "rentals"

    rental_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    device_name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[int | None] = mapped_column(ForeignKey("users.user_id"), nullable=True)


class RentalBooking(TimestampMixin, Base):
    """Reservation of a rental. order_id links the synthesized billing order."""

    __tablename__ = "rental_bookings"

    rental_booking_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    rental_id: Mapped[int] = mapped_column(ForeignKey("rentals.rental_id"), nullable=False)
    client_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), index=True, nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    total_amount_kobo: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="pending", nullable=False)
    payment_status: Mapped[str] = mapped_column(String(32), default=BOOKING_PAYMENT_UNPAID, nullable=False)
    order_id: Mapped[int | None] = mapped_column(ForeignKey("orders.order_id"), nullable=True)
