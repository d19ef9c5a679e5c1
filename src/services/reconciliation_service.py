"""Order reconciliation: apply a confirmed charge to an order exactly once."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.middleware.error_handler import APIError, AuthorizationError
from src.core.config import get_settings
from src.core.database import get_session_factory
from src.models.base import utcnow
from src.models.course import CourseEnrollment
from src.models.offer import CustomOffer, OfferStatus
from src.models.order import (
    HARDWARE_RENTAL_CATEGORY,
    ORDER_STATUS_FAILED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PARTIALLY_PAID,
    ORDER_STATUS_PENDING,
    Order,
    ProductCategory,
)
from src.models.payment import PAYMENT_STATUS_FAILED, PAYMENT_STATUS_SUCCESS, Payment
from src.models.referral import WalletUsage
from src.models.rental import Rental, RentalBooking
from src.schemas.payment import ReconciliationData
from src.services.charges import (
    ChargeConfirmation,
    CourseTarget,
    CustomOfferTarget,
    RentalTarget,
    ServiceTarget,
    ServiceType,
)
from src.services.errors import (
    InsufficientWalletBalanceError,
    ProductMismatchError,
    ProductNotFoundError,
    TransactionFailureError,
)
from src.services.pricing_service import PricingService
from src.services.referral_service import ReferralService
from src.services.status_catalog import StatusCatalog, get_status_catalog
from src.services.wallet_service import clamp_wallet_usage, locked_wallet_balance

logger = logging.getLogger(__name__)


def resolve_order_status(amount_paid_kobo: int, expected_kobo: int) -> str:
    """Order status implied by a paid total.

    >>> resolve_order_status(4000, 10000)
    'partially_paid'
    """
    if amount_paid_kobo >= expected_kobo:
        return ORDER_STATUS_PAID
    if amount_paid_kobo > 0:
        return ORDER_STATUS_PARTIALLY_PAID
    return ORDER_STATUS_PENDING


async def already_processed(
    session: AsyncSession,
    reference: str,
    payment_status: str = PAYMENT_STATUS_SUCCESS,
    order_id: int | None = None,
) -> bool:
    """Check whether a gateway reference has already been recorded.

    Args:
        session: Session of the transaction that would insert the payment.
        reference: Gateway reference.
        payment_status: Outcome the reference is recorded under.
        order_id: Narrow the lookup to one order (verify path).

    Returns:
        bool: True if a matching payment row exists.
    """
    stmt = select(Payment.payment_id).where(
        Payment.paystack_reference == reference,
        Payment.paystack_status == payment_status,
    )
    if order_id is not None:
        stmt = stmt.where(Payment.order_id == order_id)
    return await session.scalar(stmt.limit(1)) is not None


@dataclass(frozen=True)
class ReconciliationResult:
    """What a reconciliation did, for the HTTP response and the dispatcher."""

    order_id: int
    user_id: int
    reference: str
    status: str
    amount_paid_to_date_kobo: int
    expected_amount_kobo: int
    service: ServiceType
    amount_kobo: int = 0
    title: str | None = None
    customer_email: str | None = None
    mailing_group: str | None = None
    already_processed: bool = False

    @property
    def is_paid(self) -> bool:
        return self.status == ORDER_STATUS_PAID

    def to_data(self) -> ReconciliationData:
        return ReconciliationData(
            order_id=self.order_id,
            reference=self.reference,
            status=self.status,
            amount_paid_to_date_kobo=self.amount_paid_to_date_kobo,
            expected_amount_kobo=self.expected_amount_kobo,
            already_processed=self.already_processed,
        )


class ReconciliationService:
    """Applies gateway-confirmed charges to orders inside one database transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        catalog: StatusCatalog | None = None,
        pricing: PricingService | None = None,
        referrals: ReferralService | None = None,
    ) -> None:
        """Initialize reconciliation service with its collaborators."""
        self.settings = get_settings()
        self.session_factory = session_factory or get_session_factory()
        self.catalog = catalog or get_status_catalog()
        self.pricing = pricing or PricingService()
        self.referrals = referrals or ReferralService()

    async def reconcile_charge(self, charge: ChargeConfirmation) -> ReconciliationResult:
        """Record a successful charge and advance the order.

        Everything from the duplicate check to the referral credit happens
        in one transaction. A duplicate reference returns the current order
        state with already_processed set instead of raising.

        Args:
            charge: Normalized successful charge.

        Returns:
            ReconciliationResult: Order state after the charge.

        Raises:
            StatusCatalogNotReadyError: If order statuses cannot be loaded.
            ProductNotFoundError: If the order, product, or booking is missing.
            ProductMismatchError: If the product named by the charge belongs to another order.
            UnknownPaymentOptionError: If a custom-offer option is not recognised.
            InsufficientWalletBalanceError: If a wallet payment exceeds the balance.
            TransactionFailureError: If anything else fails; nothing is persisted.
        """
        statuses = await self.catalog.ensure_loaded()

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if isinstance(charge.target, RentalTarget):
                        return await self._apply_rental(session, charge, charge.target, statuses)
                    return await self._apply_priced(session, charge, statuses)
        except APIError:
            raise
        except IntegrityError as e:
            # A concurrent delivery inserted the same reference first
            duplicate = await self._find_recorded(charge.reference, PAYMENT_STATUS_SUCCESS, charge.target)
            if duplicate is not None:
                logger.info("Payment %s was recorded concurrently; treating as already processed", charge.reference)
                return duplicate
            logger.exception("Reconciliation for %s hit a constraint violation and was rolled back", charge.reference)
            raise TransactionFailureError() from e
        except Exception as e:
            logger.exception("Reconciliation for %s failed and was rolled back", charge.reference)
            raise TransactionFailureError() from e

    async def record_failed_charge(self, charge: ChargeConfirmation) -> ReconciliationResult | None:
        """Record a failed charge.

        The order moves to failed only if it is still pending with nothing
        paid; partially paid and paid orders never regress.

        Returns:
            ReconciliationResult | None: Order state, or None when a rental
            booking has no order to attach the attempt to yet.
        """
        statuses = await self.catalog.ensure_loaded()

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if await already_processed(session, charge.reference, PAYMENT_STATUS_FAILED):
                        logger.info("Failed charge %s already recorded", charge.reference)
                        return await self._current_state(session, charge, PAYMENT_STATUS_FAILED)

                    order = await self._order_for_failed_charge(session, charge)
                    if order is None:
                        logger.info("No order exists yet for failed rental charge %s", charge.reference)
                        return None

                    session.add(
                        Payment(
                            order_id=order.order_id,
                            paystack_reference=charge.reference,
                            amount_kobo=charge.amount_kobo,
                            currency=charge.currency,
                            paystack_status=PAYMENT_STATUS_FAILED,
                            gateway_response=charge.gateway_response,
                            customer_email=charge.customer_email,
                            payment_option=charge.payment_option,
                        )
                    )

                    if order.amount_paid_to_date_kobo == 0 and order.order_status_id == statuses[ORDER_STATUS_PENDING]:
                        order.order_status_id = statuses[ORDER_STATUS_FAILED]
                        logger.info("Order %s marked failed after charge %s", order.order_id, charge.reference)
                    else:
                        logger.info(
                            "Failed charge %s recorded; order %s keeps its status",
                            charge.reference,
                            order.order_id,
                        )
                    await session.flush()

                    return self._result(order, charge, statuses, amount_kobo=0)
        except APIError:
            raise
        except IntegrityError as e:
            duplicate = await self._find_recorded(charge.reference, PAYMENT_STATUS_FAILED, charge.target)
            if duplicate is not None:
                return duplicate
            logger.exception("Recording failed charge %s was rolled back", charge.reference)
            raise TransactionFailureError() from e
        except Exception as e:
            logger.exception("Recording failed charge %s was rolled back", charge.reference)
            raise TransactionFailureError() from e

    async def _apply_priced(
        self,
        session: AsyncSession,
        charge: ChargeConfirmation,
        statuses: Mapping[str, int],
    ) -> ReconciliationResult:
        guard_order_id = charge.order_id if charge.source == "verify" else None
        if await already_processed(session, charge.reference, order_id=guard_order_id):
            logger.info("Payment %s already processed for order %s", charge.reference, charge.order_id)
            return await self._current_state(session, charge, PAYMENT_STATUS_SUCCESS)

        target = charge.target
        order = await self._lock_order(session, charge.order_id)
        if order is None:
            raise ProductNotFoundError(f"Order {charge.order_id} not found.")

        expected = await self.pricing.expected_amount(session, target, charge.payment_option)

        offer = None
        if isinstance(target, CustomOfferTarget):
            offer = await session.get(CustomOffer, target.offer_id)
            self._check_offer_order(offer, order, charge)
        else:
            self._check_course_order(order, expected.amount_kobo, charge)

        status_name, received = await self._apply_payment(
            session,
            charge,
            order,
            expected_kobo=expected.amount_kobo,
            statuses=statuses,
            payment_option=expected.payment_option.value if expected.payment_option else charge.payment_option,
            discount_percentage=expected.discount_percentage,
        )

        now = utcnow()
        order.title = expected.title
        order.start_date = now
        if expected.duration_days is not None:
            order.end_date = now + timedelta(days=expected.duration_days)

        mailing_group = None
        if offer is not None:
            if offer.status != OfferStatus.PENDING.value:
                logger.warning(
                    "Offer %s was %s when payment %s arrived; accepting it",
                    offer.offer_id,
                    offer.status,
                    charge.reference,
                )
            offer.status = OfferStatus.ACCEPTED.value

        if isinstance(target, CourseTarget) and status_name == ORDER_STATUS_PAID:
            await self._activate_enrollment(session, target.course_id, order.user_id, statuses[ORDER_STATUS_PAID])
            mailing_group = expected.mailing_group

        await self.referrals.maybe_credit_referral(session, order.user_id, order.order_id, received)
        await session.flush()

        logger.info(
            "Order %s reconciled with %s: %d/%d kobo, status %s",
            order.order_id,
            charge.reference,
            order.amount_paid_to_date_kobo,
            order.total_expected_amount_kobo,
            status_name,
        )
        return self._result(order, charge, statuses, amount_kobo=received, mailing_group=mailing_group)

    @staticmethod
    def _check_offer_order(offer: CustomOffer, order: Order, charge: ChargeConfirmation) -> None:
        if offer.order_id != order.order_id or offer.user_id != order.user_id:
            logger.warning(
                "Charge %s names offer %s (order %s, user %s) against order %s of user %s",
                charge.reference,
                offer.offer_id,
                offer.order_id,
                offer.user_id,
                order.order_id,
                order.user_id,
            )
            raise ProductMismatchError(f"Offer {offer.offer_id} does not belong to order {order.order_id}.")

    @staticmethod
    def _check_course_order(order: Order, expected_kobo: int, charge: ChargeConfirmation) -> None:
        # An order already priced for one course cannot be settled at another course's price
        priced = order.total_expected_amount_kobo
        if priced and priced != expected_kobo:
            logger.warning(
                "Charge %s prices order %s at %d kobo but the order is priced at %d",
                charge.reference,
                order.order_id,
                expected_kobo,
                priced,
            )
            raise ProductMismatchError(f"Course does not match the price of order {order.order_id}.")

    async def _apply_rental(
        self,
        session: AsyncSession,
        charge: ChargeConfirmation,
        target: RentalTarget,
        statuses: Mapping[str, int],
    ) -> ReconciliationResult:
        # Booking ids and order ids share the orderId slot, so only the reference is guarded
        if await already_processed(session, charge.reference):
            logger.info("Rental payment %s already processed", charge.reference)
            return await self._current_state(session, charge, PAYMENT_STATUS_SUCCESS)

        booking = await session.scalar(
            select(RentalBooking).where(RentalBooking.rental_booking_id == target.booking_id).with_for_update()
        )
        if booking is None:
            raise ProductNotFoundError(f"Rental booking {target.booking_id} not found.")
        rental = await session.get(Rental, booking.rental_id)
        title = f"Rental: {rental.device_name}" if rental else f"Rental booking #{booking.rental_booking_id}"

        order = await self._lock_order(session, booking.order_id) if booking.order_id else None
        if order is None:
            category = await self._rental_category(session)
            order = Order(
                user_id=booking.client_id,
                category_id=category.category_id,
                total_expected_amount_kobo=booking.total_amount_kobo,
                amount_paid_to_date_kobo=0,
                order_status_id=statuses[ORDER_STATUS_PENDING],
                title=title,
            )
            session.add(order)
            await session.flush()
            logger.info("Created order %s for rental booking %s", order.order_id, booking.rental_booking_id)

        status_name, received = await self._apply_payment(
            session,
            charge,
            order,
            expected_kobo=booking.total_amount_kobo,
            statuses=statuses,
            payment_option=charge.payment_option,
            discount_percentage=0,
            owner_id=booking.client_id,
        )

        order.title = title
        order.start_date = booking.start_date
        order.end_date = booking.end_date
        booking.order_id = order.order_id
        booking.payment_status = status_name

        await self.referrals.maybe_credit_referral(session, order.user_id, order.order_id, received)
        await session.flush()

        logger.info(
            "Rental booking %s reconciled with %s into order %s, status %s",
            booking.rental_booking_id,
            charge.reference,
            order.order_id,
            status_name,
        )
        return self._result(order, charge, statuses, amount_kobo=received)

    async def _apply_payment(
        self,
        session: AsyncSession,
        charge: ChargeConfirmation,
        order: Order,
        expected_kobo: int,
        statuses: Mapping[str, int],
        payment_option: str | None,
        discount_percentage: int,
        owner_id: int | None = None,
    ) -> tuple[str, int]:
        """Insert the payment and wallet rows and advance the order totals.

        Returns:
            tuple[str, int]: New status name and amount applied (charge plus wallet).
        """
        owner_id = owner_id if owner_id is not None else order.user_id
        if charge.payer_id is not None and charge.payer_id != owner_id:
            raise AuthorizationError("Order does not belong to the current user")

        wallet_used = await self._wallet_usage(session, charge, owner_id)
        received = charge.amount_kobo + wallet_used
        prior = order.amount_paid_to_date_kobo

        if received not in (expected_kobo, max(0, expected_kobo - prior)):
            logger.warning(
                "Amount mismatch for %s on order %s: received %d kobo, expected %d (paid so far %d)",
                charge.reference,
                order.order_id,
                received,
                expected_kobo,
                prior,
            )
        if charge.currency.upper() != self.settings.expected_currency.upper():
            logger.warning(
                "Currency mismatch for %s: got %s, expected %s",
                charge.reference,
                charge.currency,
                self.settings.expected_currency,
            )
        if charge.declared_original_amount_kobo is not None and charge.declared_original_amount_kobo != expected_kobo:
            logger.info(
                "Client declared %d kobo for %s; recomputed %d",
                charge.declared_original_amount_kobo,
                charge.reference,
                expected_kobo,
            )

        session.add(
            Payment(
                order_id=order.order_id,
                paystack_reference=charge.reference,
                amount_kobo=charge.amount_kobo,
                currency=charge.currency,
                paystack_status=PAYMENT_STATUS_SUCCESS,
                gateway_response=charge.gateway_response,
                customer_email=charge.customer_email,
                payment_option=payment_option,
                discount_percentage=discount_percentage,
                wallet_usage_kobo=wallet_used,
            )
        )
        if wallet_used:
            session.add(WalletUsage(user_id=owner_id, order_id=order.order_id, amount_kobo=wallet_used))

        new_paid = prior + received
        status_name = resolve_order_status(new_paid, expected_kobo)
        if new_paid > expected_kobo:
            logger.warning("Order %s overpaid: %d of %d kobo", order.order_id, new_paid, expected_kobo)

        order.amount_paid_to_date_kobo = new_paid
        order.total_expected_amount_kobo = expected_kobo
        order.order_status_id = statuses[status_name]
        await session.flush()
        return status_name, received

    async def _wallet_usage(self, session: AsyncSession, charge: ChargeConfirmation, owner_id: int) -> int:
        if charge.wallet_usage_kobo <= 0:
            return 0

        balance = (await locked_wallet_balance(session, owner_id)).balance_kobo
        if charge.source == "wallet":
            if balance < charge.wallet_usage_kobo:
                raise InsufficientWalletBalanceError(balance, charge.wallet_usage_kobo)
            return charge.wallet_usage_kobo

        used = clamp_wallet_usage(charge.wallet_usage_kobo, balance)
        if used != charge.wallet_usage_kobo:
            logger.warning(
                "Wallet usage for %s clamped from %d to %d kobo (balance %d)",
                charge.reference,
                charge.wallet_usage_kobo,
                used,
                balance,
            )
        return used

    async def _activate_enrollment(
        self,
        session: AsyncSession,
        course_id: int,
        user_id: int,
        paid_status_id: int,
    ) -> CourseEnrollment:
        enrollment = await session.scalar(
            select(CourseEnrollment).where(
                CourseEnrollment.course_id == course_id,
                CourseEnrollment.user_id == user_id,
            )
        )
        if enrollment is None:
            enrollment = CourseEnrollment(course_id=course_id, user_id=user_id)
            session.add(enrollment)
        enrollment.payment_status_id = paid_status_id
        await session.flush()
        logger.info("Enrollment activated for user %s in course %s", user_id, course_id)
        return enrollment

    async def _rental_category(self, session: AsyncSession) -> ProductCategory:
        category = await session.scalar(
            select(ProductCategory).where(ProductCategory.category_name == HARDWARE_RENTAL_CATEGORY)
        )
        if category is None:
            category = ProductCategory(category_name=HARDWARE_RENTAL_CATEGORY)
            session.add(category)
            await session.flush()
            logger.info("Created product category %r", HARDWARE_RENTAL_CATEGORY)
        return category

    async def _lock_order(self, session: AsyncSession, order_id: int) -> Order | None:
        return await session.scalar(select(Order).where(Order.order_id == order_id).with_for_update())

    async def _order_for_failed_charge(self, session: AsyncSession, charge: ChargeConfirmation) -> Order | None:
        if isinstance(charge.target, RentalTarget):
            booking = await session.get(RentalBooking, charge.target.booking_id)
            if booking is None:
                raise ProductNotFoundError(f"Rental booking {charge.target.booking_id} not found.")
            if booking.order_id is None:
                return None
            return await self._lock_order(session, booking.order_id)

        order = await self._lock_order(session, charge.order_id)
        if order is None:
            raise ProductNotFoundError(f"Order {charge.order_id} not found.")
        return order

    async def _current_state(
        self,
        session: AsyncSession,
        charge: ChargeConfirmation,
        payment_status: str,
    ) -> ReconciliationResult:
        payment = await session.scalar(
            select(Payment).where(
                Payment.paystack_reference == charge.reference,
                Payment.paystack_status == payment_status,
            )
        )
        order = await session.get(Order, payment.order_id) if payment else None
        if order is None:
            raise ProductNotFoundError(f"Order for payment {charge.reference} not found.")
        return self._result(order, charge, await self.catalog.ensure_loaded(), already=True)

    async def _find_recorded(
        self,
        reference: str,
        payment_status: str,
        target: ServiceTarget,
    ) -> ReconciliationResult | None:
        async with self.session_factory() as session:
            payment = await session.scalar(
                select(Payment).where(
                    Payment.paystack_reference == reference,
                    Payment.paystack_status == payment_status,
                )
            )
            if payment is None:
                return None
            order = await session.get(Order, payment.order_id)
            if order is None:
                return None
            statuses = await self.catalog.ensure_loaded()
            return ReconciliationResult(
                order_id=order.order_id,
                user_id=order.user_id,
                reference=reference,
                status=self._status_name(order, statuses),
                amount_paid_to_date_kobo=order.amount_paid_to_date_kobo,
                expected_amount_kobo=order.total_expected_amount_kobo,
                service=target.kind,
                title=order.title,
                already_processed=True,
            )

    def _result(
        self,
        order: Order,
        charge: ChargeConfirmation,
        statuses: Mapping[str, int],
        amount_kobo: int = 0,
        mailing_group: str | None = None,
        already: bool = False,
    ) -> ReconciliationResult:
        return ReconciliationResult(
            order_id=order.order_id,
            user_id=order.user_id,
            reference=charge.reference,
            status=self._status_name(order, statuses),
            amount_paid_to_date_kobo=order.amount_paid_to_date_kobo,
            expected_amount_kobo=order.total_expected_amount_kobo,
            service=charge.target.kind,
            amount_kobo=amount_kobo,
            title=order.title,
            customer_email=charge.customer_email,
            mailing_group=mailing_group,
            already_processed=already,
        )

    @staticmethod
    def _status_name(order: Order, statuses: Mapping[str, int]) -> str:
        for name, status_id in statuses.items():
            if status_id == order.order_status_id:
                return name
        return str(order.order_status_id)
