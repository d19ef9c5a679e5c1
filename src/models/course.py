"""Course catalog and enrollments."""

import math
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimestampMixin, utcnow


class Course(TimestampMixin, Base):
    """Course catalog entry. Prices are integer kobo."""

    __tablename__ = "courses"

    course_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price_in_kobo: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    mailing_group: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def duration_days(self) -> int | None:
        """Whole days between start and end, rounded up."""
        if self.start_date is None or self.end_date is None:
            return None
        seconds = (self.end_date - self.start_date).total_seconds()
        return max(0, math.ceil(seconds / 86400))


class CourseEnrollment(Base):
    """A user's enrollment in a course; payment_status_id grants access once paid."""

    __tablename__ = "course_enrollments"
    __table_args__ = (UniqueConstraint("course_id", "user_id", name="uq_enrollment_course_user"),)

    enrollment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.course_id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.user_id"), index=True, nullable=False)
    payment_status_id: Mapped[int | None] = mapped_column(
        ForeignKey("order_statuses.order_status_id"), nullable=True
    )
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
