"""Order, status catalog and product category tables."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin

# Status names the reconciliation engine relies on. Other rows may exist.
ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PARTIALLY_PAID = "partially_paid"
ORDER_STATUS_PAID = "paid"
ORDER_STATUS_FAILED = "failed"

REQUIRED_ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PARTIALLY_PAID,
    ORDER_STATUS_PAID,
    ORDER_STATUS_FAILED,
)

HARDWARE_RENTAL_CATEGORY = "Hardware Rental"


class OrderStatus(Base):
    """Reference data: order lifecycle state name and its numeric id."""

    __tablename__ = "order_statuses"

    order_status_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)


class ProductCategory(Base):
    """Category an order belongs to (Course, Animation, Hardware Rental, ...)."""

    __tablename__ = "product_categories"

    category_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    category_name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)


class Order(TimestampMixin, Base):
    """A unit of commerce.

    Amounts are integer kobo. amount_paid_to_date_kobo may exceed
    total_expected_amount_kobo (overpayment is allowed and logged).
    """

    __tablename__ = "orders"

    order_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), index=True, nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("product_categories.category_id"), nullable=True)
    total_expected_amount_kobo: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    amount_paid_to_date_kobo: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    order_status_id: Mapped[int] = mapped_column(ForeignKey("order_statuses.order_status_id"), nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    project_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    project_duration_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    tracking_code: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    @property
    def outstanding_kobo(self) -> int:
        """Amount still owed (never negative)."""
        return max(0, self.total_expected_amount_kobo - self.amount_paid_to_date_kobo)
