"""Recompute the expected charge from stored product data."""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.course import Course
from src.models.offer import CustomOffer
from src.models.order import Order
from src.services.charges import CourseTarget, CustomOfferTarget, PaymentOption, PricedTarget
from src.services.errors import ProductNotFoundError

logger = logging.getLogger(__name__)


def round_kobo(value: Decimal) -> int:
    """Round to the nearest kobo, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_payment_option(base_amount_kobo: int, option: PaymentOption) -> int:
    """Apply a payment option multiplier to a base price.

    >>> apply_payment_option(100000, PaymentOption.DEPOSIT_70_DISCOUNT)
    66500
    """
    return round_kobo(Decimal(base_amount_kobo) * option.multiplier)


@dataclass(frozen=True)
class ExpectedCharge:
    """Authoritative expected amount for a charge."""

    amount_kobo: int
    title: str
    duration_days: int | None
    base_amount_kobo: int
    discount_percentage: int = 0
    payment_option: PaymentOption | None = None
    mailing_group: str | None = None


class PricingService:
    """Derives expected amounts from trusted stored data, never from client claims."""

    async def expected_amount(
        self,
        session: AsyncSession,
        target: PricedTarget,
        payment_option: str | None = None,
    ) -> ExpectedCharge:
        """Compute the expected charge for a course or custom offer.

        Rentals are priced by their booking in the booking-completion path.

        Args:
            session: Session of the surrounding transaction.
            target: Course or custom offer being paid for.
            payment_option: Option name; required for custom offers, ignored for courses.

        Returns:
            ExpectedCharge: Amount in kobo, order title, and duration.

        Raises:
            ProductNotFoundError: If the course or offer does not exist.
            UnknownPaymentOptionError: If a custom-offer option is not recognised.
        """
        if isinstance(target, CourseTarget):
            return await self._course_charge(session, target)
        if isinstance(target, CustomOfferTarget):
            return await self._offer_charge(session, target, payment_option)
        raise TypeError(f"Cannot price {type(target).__name__}")

    async def _course_charge(self, session: AsyncSession, target: CourseTarget) -> ExpectedCharge:
        course = await session.get(Course, target.course_id)
        if course is None:
            raise ProductNotFoundError(f"Course {target.course_id} not found.")
        if not course.is_active:
            logger.warning("Payment received for inactive course %s", course.course_id)

        return ExpectedCharge(
            amount_kobo=course.price_in_kobo,
            title=course.title,
            duration_days=course.duration_days,
            base_amount_kobo=course.price_in_kobo,
            mailing_group=course.mailing_group or course.title,
        )

    async def _offer_charge(
        self,
        session: AsyncSession,
        target: CustomOfferTarget,
        payment_option: str | None,
    ) -> ExpectedCharge:
        option = PaymentOption.parse(payment_option)
        offer = await session.get(CustomOffer, target.offer_id)
        if offer is None:
            raise ProductNotFoundError(f"Custom offer {target.offer_id} not found.")

        order = await session.get(Order, offer.order_id)
        title = (order.title if order and order.title else None) or offer.description or f"Custom offer #{offer.offer_id}"

        return ExpectedCharge(
            amount_kobo=apply_payment_option(offer.offer_amount_in_kobo, option),
            title=title,
            duration_days=order.project_duration_days if order else None,
            base_amount_kobo=offer.offer_amount_in_kobo,
            discount_percentage=option.discount_percentage,
            payment_option=option,
        )
