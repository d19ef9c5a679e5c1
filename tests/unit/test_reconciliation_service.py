"""Unit tests for ReconciliationService."""

import logging
from datetime import datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from src.api.middleware.error_handler import AuthorizationError
from src.models import (
    CourseEnrollment,
    CustomOffer,
    Order,
    Payment,
    ProductCategory,
    ReferralEarning,
    RentalBooking,
    WalletUsage,
)
from src.services.charges import (
    ChargeConfirmation,
    CourseTarget,
    CustomOfferTarget,
    RentalTarget,
    ServiceType,
    wallet_charge,
)
from src.services.errors import (
    InsufficientWalletBalanceError,
    ProductMismatchError,
    ProductNotFoundError,
    StatusCatalogNotReadyError,
    TransactionFailureError,
    UnknownPaymentOptionError,
)
from src.services.reconciliation_service import ReconciliationService, resolve_order_status
from src.services.status_catalog import StatusCatalog
from src.services.wallet_service import locked_wallet_balance
from tests.helpers import STATUS_IDS, Seeder


def make_charge(
    reference: str,
    order_id: int,
    target: CourseTarget | CustomOfferTarget | RentalTarget,
    amount_kobo: int,
    **kwargs: Any,
) -> ChargeConfirmation:
    kwargs.setdefault("currency", "NGN")
    kwargs.setdefault("gateway_status", "success")
    kwargs.setdefault("source", "webhook")
    return ChargeConfirmation(
        reference=reference,
        amount_kobo=amount_kobo,
        order_id=order_id,
        target=target,
        **kwargs,
    )


def fund_wallet(seed: Seeder, owner_id: int, amount_kobo: int) -> None:
    """Give owner_id wallet credit by recording a referral they earned."""
    referred = seed.user(referred_by_id=owner_id)
    order = seed.order(referred.user_id)
    seed.add(
        ReferralEarning(
            referrer_id=owner_id,
            referred_user_id=referred.user_id,
            order_id=order.order_id,
            amount_kobo=amount_kobo,
        )
    )


class TestResolveOrderStatus:
    """Tests for resolve_order_status."""

    @pytest.mark.parametrize(
        ("paid", "expected", "status"),
        [
            (0, 10000, "pending"),
            (4000, 10000, "partially_paid"),
            (10000, 10000, "paid"),
            (12000, 10000, "paid"),
            (0, 0, "paid"),
        ],
    )
    def test_status_from_totals(self, paid: int, expected: int, status: str) -> None:
        """Test the status implied by the paid total."""
        assert resolve_order_status(paid, expected) == status


class TestReconcileCourse:
    """Tests for course payments."""

    @pytest.mark.asyncio
    async def test_full_payment_marks_paid_and_enrolls(self, seed: Seeder) -> None:
        """Test that paying the course price completes the order."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000, days=30)
        order = seed.order(user.user_id)

        result = await ReconciliationService().reconcile_charge(
            make_charge("ref_course", order.order_id, CourseTarget(course.course_id), 10000, customer_email=user.email)
        )

        assert result.status == "paid"
        assert result.is_paid is True
        assert result.already_processed is False
        assert result.amount_paid_to_date_kobo == 10000
        assert result.expected_amount_kobo == 10000
        assert result.amount_kobo == 10000
        assert result.service is ServiceType.COURSE
        assert result.title == "Intro to 3D Animation"
        assert result.mailing_group == "Intro to 3D Animation"

        stored = seed.get(Order, order.order_id)
        assert stored.order_status_id == STATUS_IDS["paid"]
        assert stored.title == "Intro to 3D Animation"
        assert stored.end_date - stored.start_date == timedelta(days=30)

        enrollments = seed.all(CourseEnrollment)
        assert len(enrollments) == 1
        assert enrollments[0].user_id == user.user_id
        assert enrollments[0].payment_status_id == STATUS_IDS["paid"]

        payments = seed.all(Payment)
        assert len(payments) == 1
        assert payments[0].paystack_reference == "ref_course"
        assert payments[0].paystack_status == "success"
        assert payments[0].customer_email == user.email

    @pytest.mark.asyncio
    async def test_replays_are_idempotent(self, seed: Seeder) -> None:
        """Test that delivering the same reference repeatedly applies it once."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)
        service = ReconciliationService()
        charge = make_charge("ref_dup", order.order_id, CourseTarget(course.course_id), 4000)

        first = await service.reconcile_charge(charge)
        replays = [await service.reconcile_charge(charge) for _ in range(3)]

        assert first.already_processed is False
        assert all(replay.already_processed for replay in replays)
        assert all(replay.amount_paid_to_date_kobo == 4000 for replay in replays)
        assert seed.count(Payment) == 1
        assert seed.get(Order, order.order_id).amount_paid_to_date_kobo == 4000

    @pytest.mark.asyncio
    async def test_partial_then_full_payment(self, seed: Seeder) -> None:
        """Test that installments accumulate and enrollment waits for full payment."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)
        service = ReconciliationService()
        target = CourseTarget(course.course_id)

        partial = await service.reconcile_charge(make_charge("ref_part_1", order.order_id, target, 4000))

        assert partial.status == "partially_paid"
        assert partial.mailing_group is None
        assert seed.count(CourseEnrollment) == 0

        full = await service.reconcile_charge(make_charge("ref_part_2", order.order_id, target, 6000))

        assert full.status == "paid"
        assert full.amount_paid_to_date_kobo == 10000
        assert full.amount_kobo == 6000
        assert seed.count(CourseEnrollment) == 1
        assert seed.count(Payment) == 2

    @pytest.mark.asyncio
    async def test_existing_enrollment_is_activated(self, seed: Seeder) -> None:
        """Test that a pending enrollment row is updated rather than duplicated."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)
        seed.add(CourseEnrollment(course_id=course.course_id, user_id=user.user_id, payment_status_id=STATUS_IDS["pending"]))

        await ReconciliationService().reconcile_charge(
            make_charge("ref_enroll", order.order_id, CourseTarget(course.course_id), 10000)
        )

        enrollments = seed.all(CourseEnrollment)
        assert len(enrollments) == 1
        assert enrollments[0].payment_status_id == STATUS_IDS["paid"]

    @pytest.mark.asyncio
    async def test_amount_mismatch_is_logged_not_rejected(self, seed: Seeder, caplog: pytest.LogCaptureFixture) -> None:
        """Test that an unexpected amount is recorded with a warning."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)

        with caplog.at_level(logging.WARNING, logger="src.services.reconciliation_service"):
            result = await ReconciliationService().reconcile_charge(
                make_charge("ref_odd", order.order_id, CourseTarget(course.course_id), 7000, currency="USD")
            )

        assert result.status == "partially_paid"
        assert "Amount mismatch" in caplog.text
        assert "Currency mismatch" in caplog.text

    @pytest.mark.asyncio
    async def test_overpayment_is_paid(self, seed: Seeder, caplog: pytest.LogCaptureFixture) -> None:
        """Test that paying more than expected still completes the order."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)

        with caplog.at_level(logging.WARNING, logger="src.services.reconciliation_service"):
            result = await ReconciliationService().reconcile_charge(
                make_charge("ref_over", order.order_id, CourseTarget(course.course_id), 15000)
            )

        assert result.status == "paid"
        assert result.amount_paid_to_date_kobo == 15000
        assert "overpaid" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_order_raises(self, seed: Seeder) -> None:
        """Test that a charge for an unknown order is rejected without writes."""
        course = seed.course()

        with pytest.raises(ProductNotFoundError):
            await ReconciliationService().reconcile_charge(make_charge("ref_ghost", 999, CourseTarget(course.course_id), 10000))

        assert seed.count(Payment) == 0

    @pytest.mark.asyncio
    async def test_missing_course_raises(self, seed: Seeder) -> None:
        """Test that a charge for an unknown course is rejected without writes."""
        user = seed.user()
        order = seed.order(user.user_id)

        with pytest.raises(ProductNotFoundError):
            await ReconciliationService().reconcile_charge(make_charge("ref_nocourse", order.order_id, CourseTarget(77), 10000))

        assert seed.count(Payment) == 0

    @pytest.mark.asyncio
    async def test_cheaper_course_cannot_settle_priced_order(self, seed: Seeder) -> None:
        """Test that an order priced for one course refuses another course's price."""
        user = seed.user()
        cheap = seed.course(price_in_kobo=1000)
        order = seed.order(user.user_id, total_expected_amount_kobo=500000)

        with pytest.raises(ProductMismatchError):
            await ReconciliationService().reconcile_charge(
                make_charge("ref_cheap_course", order.order_id, CourseTarget(cheap.course_id), 1000)
            )

        assert seed.count(Payment) == 0
        assert seed.count(CourseEnrollment) == 0
        stored = seed.get(Order, order.order_id)
        assert stored.total_expected_amount_kobo == 500000
        assert stored.order_status_id == STATUS_IDS["pending"]


class TestReconcileCustomOffer:
    """Tests for custom offer payments."""

    @pytest.mark.asyncio
    async def test_discounted_deposit_accepts_offer(self, seed: Seeder) -> None:
        """Test that a 70% discounted deposit pays the order and accepts the offer."""
        user = seed.user()
        order = seed.order(user.user_id, title="Brand film", project_duration_days=21)
        offer = seed.offer(order.order_id, user.user_id, amount=100000)

        result = await ReconciliationService().reconcile_charge(
            make_charge(
                "ref_offer",
                order.order_id,
                CustomOfferTarget(offer.offer_id),
                66500,
                payment_option="deposit_70_discount",
            )
        )

        assert result.status == "paid"
        assert result.expected_amount_kobo == 66500
        assert result.service is ServiceType.CUSTOM_OFFER
        assert result.mailing_group is None
        assert seed.get(CustomOffer, offer.offer_id).status == "accepted"

        stored = seed.get(Order, order.order_id)
        assert stored.end_date - stored.start_date == timedelta(days=21)

        payment = seed.all(Payment)[0]
        assert payment.payment_option == "deposit_70_discount"
        assert payment.discount_percentage == 5

    @pytest.mark.asyncio
    async def test_half_deposit_is_paid_against_recomputed_amount(self, seed: Seeder) -> None:
        """Test that the expected amount is the option's share, not the client's claim."""
        user = seed.user()
        order = seed.order(user.user_id)
        offer = seed.offer(order.order_id, user.user_id, amount=100000)

        result = await ReconciliationService().reconcile_charge(
            make_charge(
                "ref_half",
                order.order_id,
                CustomOfferTarget(offer.offer_id),
                50000,
                payment_option="deposit_50",
                declared_original_amount_kobo=10,
            )
        )

        assert result.status == "paid"
        assert result.expected_amount_kobo == 50000

    @pytest.mark.asyncio
    async def test_unknown_option_writes_nothing(self, seed: Seeder) -> None:
        """Test that an unrecognised option aborts before any write."""
        user = seed.user()
        order = seed.order(user.user_id)
        offer = seed.offer(order.order_id, user.user_id)

        with pytest.raises(UnknownPaymentOptionError):
            await ReconciliationService().reconcile_charge(
                make_charge("ref_bad_opt", order.order_id, CustomOfferTarget(offer.offer_id), 50000, payment_option="deposit_30")
            )

        assert seed.count(Payment) == 0
        assert seed.get(CustomOffer, offer.offer_id).status == "pending"

    @pytest.mark.asyncio
    async def test_offer_from_another_order_is_rejected(self, seed: Seeder) -> None:
        """Test that a cheap offer cannot settle an unrelated order."""
        owner = seed.user()
        other = seed.user()
        order = seed.order(owner.user_id, total_expected_amount_kobo=5000000)
        other_order = seed.order(other.user_id)
        offer = seed.offer(other_order.order_id, other.user_id, amount=2000)

        with pytest.raises(ProductMismatchError):
            await ReconciliationService().reconcile_charge(
                make_charge(
                    "ref_cheap_offer",
                    order.order_id,
                    CustomOfferTarget(offer.offer_id),
                    1800,
                    payment_option="full_100_discount",
                )
            )

        assert seed.count(Payment) == 0
        assert seed.get(CustomOffer, offer.offer_id).status == "pending"
        stored = seed.get(Order, order.order_id)
        assert stored.total_expected_amount_kobo == 5000000
        assert stored.order_status_id == STATUS_IDS["pending"]

    @pytest.mark.asyncio
    async def test_offer_for_another_user_is_rejected(self, seed: Seeder) -> None:
        """Test that an offer made to someone else cannot pay this order."""
        owner = seed.user()
        other = seed.user()
        order = seed.order(owner.user_id)
        offer = seed.offer(order.order_id, other.user_id, amount=2000)

        with pytest.raises(ProductMismatchError):
            await ReconciliationService().reconcile_charge(
                make_charge("ref_foreign_offer", order.order_id, CustomOfferTarget(offer.offer_id), 1000, payment_option="deposit_50")
            )

        assert seed.count(Payment) == 0
        assert seed.get(CustomOffer, offer.offer_id).status == "pending"


class TestReferrals:
    """Tests for referral crediting during reconciliation."""

    @pytest.mark.asyncio
    async def test_referrer_credited_once(self, seed: Seeder) -> None:
        """Test that only the first payment of a referred user earns a commission."""
        referrer = seed.user()
        buyer = seed.user(referred_by_id=referrer.user_id)
        course = seed.course(price_in_kobo=20000)
        first = seed.order(buyer.user_id)
        second = seed.order(buyer.user_id)
        service = ReconciliationService()
        target = CourseTarget(course.course_id)

        await service.reconcile_charge(make_charge("ref_ref_1", first.order_id, target, 20000))
        await service.reconcile_charge(make_charge("ref_ref_1", first.order_id, target, 20000))
        await service.reconcile_charge(make_charge("ref_ref_2", second.order_id, target, 20000))

        earnings = seed.all(ReferralEarning)
        assert len(earnings) == 1
        assert earnings[0].referrer_id == referrer.user_id
        assert earnings[0].amount_kobo == 2000
        assert earnings[0].order_id == first.order_id


class TestAtomicity:
    """Tests for all-or-nothing reconciliation."""

    @pytest.mark.asyncio
    async def test_failure_rolls_back_everything(self, seed: Seeder) -> None:
        """Test that a failing step leaves no partial writes and a retry succeeds."""
        referrer = seed.user()
        buyer = seed.user(referred_by_id=referrer.user_id)
        course = seed.course(price_in_kobo=10000)
        order = seed.order(buyer.user_id)
        charge = make_charge("ref_atomic", order.order_id, CourseTarget(course.course_id), 10000)

        with patch.object(ReconciliationService, "_activate_enrollment", side_effect=RuntimeError("disk full")):
            with pytest.raises(TransactionFailureError) as exc_info:
                await ReconciliationService().reconcile_charge(charge)

        assert exc_info.value.status_code == 500
        assert seed.count(Payment) == 0
        assert seed.count(ReferralEarning) == 0
        stored = seed.get(Order, order.order_id)
        assert stored.amount_paid_to_date_kobo == 0
        assert stored.order_status_id == STATUS_IDS["pending"]

        result = await ReconciliationService().reconcile_charge(charge)

        assert result.status == "paid"
        assert result.already_processed is False
        assert seed.count(Payment) == 1
        assert seed.count(ReferralEarning) == 1

    @pytest.mark.asyncio
    async def test_concurrent_insert_is_reported_as_duplicate(self, seed: Seeder) -> None:
        """Test that losing the insert race returns the winner's state."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id, status="paid", total_expected_amount_kobo=10000, amount_paid_to_date_kobo=10000)
        seed.add(
            Payment(
                order_id=order.order_id,
                paystack_reference="ref_race",
                amount_kobo=10000,
                currency="NGN",
                paystack_status="success",
            )
        )

        with patch("src.services.reconciliation_service.already_processed", AsyncMock(return_value=False)):
            result = await ReconciliationService().reconcile_charge(
                make_charge("ref_race", order.order_id, CourseTarget(course.course_id), 10000)
            )

        assert result.already_processed is True
        assert result.status == "paid"
        assert result.amount_paid_to_date_kobo == 10000
        assert seed.count(Payment) == 1

    @pytest.mark.asyncio
    async def test_verify_with_other_order_is_duplicate(self, seed: Seeder) -> None:
        """Test that a reference recorded on one order cannot be applied to another."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000)
        first = seed.order(user.user_id)
        second = seed.order(user.user_id)
        service = ReconciliationService()
        target = CourseTarget(course.course_id)

        await service.reconcile_charge(make_charge("ref_shared", first.order_id, target, 10000))
        result = await service.reconcile_charge(make_charge("ref_shared", second.order_id, target, 10000, source="verify"))

        assert result.already_processed is True
        assert result.order_id == first.order_id
        assert seed.get(Order, second.order_id).amount_paid_to_date_kobo == 0

    @pytest.mark.asyncio
    async def test_catalog_not_ready_writes_nothing(self, seed: Seeder) -> None:
        """Test that reconciliation refuses to run without order statuses."""
        user = seed.user()
        course = seed.course()
        order = seed.order(user.user_id)

        async def unavailable() -> dict[str, int]:
            raise ConnectionError("database unreachable")

        service = ReconciliationService(catalog=StatusCatalog(unavailable))

        with pytest.raises(StatusCatalogNotReadyError) as exc_info:
            await service.reconcile_charge(make_charge("ref_notready", order.order_id, CourseTarget(course.course_id), 10000))

        assert exc_info.value.status_code == 503
        assert seed.count(Payment) == 0


class TestReconcileRental:
    """Tests for rental booking payments."""

    @pytest.mark.asyncio
    async def test_creates_order_for_booking(self, seed: Seeder) -> None:
        """Test that the first payment for a booking synthesizes its order."""
        user = seed.user()
        booking = seed.booking(user.user_id, total_amount_kobo=50000)

        result = await ReconciliationService().reconcile_charge(
            make_charge("ref_rental", booking.rental_booking_id, RentalTarget(booking.rental_booking_id), 50000)
        )

        assert result.status == "paid"
        assert result.service is ServiceType.RENTAL
        assert result.user_id == user.user_id
        assert result.title == "Rental: DJI Mavic 3"

        stored_booking = seed.get(RentalBooking, booking.rental_booking_id)
        assert stored_booking.order_id == result.order_id
        assert stored_booking.payment_status == "paid"

        order = seed.get(Order, result.order_id)
        assert order.total_expected_amount_kobo == 50000
        assert order.start_date == datetime(2026, 3, 1, 8, 0)
        assert order.end_date == datetime(2026, 3, 4, 8, 0)

        categories = [c.category_name for c in seed.all(ProductCategory)]
        assert "Hardware Rental" in categories
        assert order.category_id is not None

    @pytest.mark.asyncio
    async def test_second_installment_reuses_order(self, seed: Seeder) -> None:
        """Test that later payments attach to the booking's existing order."""
        user = seed.user()
        booking = seed.booking(user.user_id, total_amount_kobo=50000)
        service = ReconciliationService()
        target = RentalTarget(booking.rental_booking_id)

        first = await service.reconcile_charge(make_charge("ref_rent_1", booking.rental_booking_id, target, 20000))
        second = await service.reconcile_charge(make_charge("ref_rent_2", booking.rental_booking_id, target, 30000))

        assert first.status == "partially_paid"
        assert second.status == "paid"
        assert first.order_id == second.order_id
        assert seed.count(Order) == 1
        assert seed.get(RentalBooking, booking.rental_booking_id).payment_status == "paid"

    @pytest.mark.asyncio
    async def test_missing_booking_raises(self) -> None:
        """Test that an unknown booking is a not-found error."""
        with pytest.raises(ProductNotFoundError):
            await ReconciliationService().reconcile_charge(make_charge("ref_nobooking", 5, RentalTarget(5), 1000))


class TestWalletUsage:
    """Tests for wallet credit applied with a charge."""

    @pytest.mark.asyncio
    async def test_declared_usage_is_clamped_to_balance(self, seed: Seeder) -> None:
        """Test that a charge cannot spend more wallet credit than exists."""
        user = seed.user()
        fund_wallet(seed, user.user_id, 1000)
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)

        result = await ReconciliationService().reconcile_charge(
            make_charge("ref_wallet_mix", order.order_id, CourseTarget(course.course_id), 9000, wallet_usage_kobo=3000)
        )

        assert result.status == "paid"
        assert result.amount_paid_to_date_kobo == 10000
        usages = seed.all(WalletUsage)
        assert len(usages) == 1
        assert usages[0].amount_kobo == 1000
        assert seed.all(Payment)[0].wallet_usage_kobo == 1000

    @pytest.mark.asyncio
    async def test_wallet_only_payment(self, seed: Seeder) -> None:
        """Test that a payment made entirely from wallet credit completes the order."""
        user = seed.user()
        fund_wallet(seed, user.user_id, 20000)
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)

        result = await ReconciliationService().reconcile_charge(
            wallet_charge("WALLET-1", user.user_id, order.order_id, "course", course.course_id, 10000, "NGN")
        )

        assert result.status == "paid"
        assert seed.all(WalletUsage)[0].amount_kobo == 10000
        payment = seed.all(Payment)[0]
        assert payment.amount_kobo == 0
        assert payment.wallet_usage_kobo == 10000

    @pytest.mark.asyncio
    async def test_wallet_only_payment_requires_balance(self, seed: Seeder) -> None:
        """Test that an underfunded wallet payment is rejected without writes."""
        user = seed.user()
        fund_wallet(seed, user.user_id, 500)
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)

        with pytest.raises(InsufficientWalletBalanceError):
            await ReconciliationService().reconcile_charge(
                wallet_charge("WALLET-2", user.user_id, order.order_id, "course", course.course_id, 10000, "NGN")
            )

        assert seed.count(Payment) == 0
        assert seed.count(WalletUsage) == 0

    @pytest.mark.asyncio
    async def test_wallet_payment_for_someone_elses_order(self, seed: Seeder) -> None:
        """Test that wallet credit cannot be spent on another user's order."""
        owner = seed.user()
        intruder = seed.user()
        fund_wallet(seed, intruder.user_id, 20000)
        course = seed.course(price_in_kobo=10000)
        order = seed.order(owner.user_id)

        with pytest.raises(AuthorizationError):
            await ReconciliationService().reconcile_charge(
                wallet_charge("WALLET-3", intruder.user_id, order.order_id, "course", course.course_id, 10000, "NGN")
            )

        assert seed.count(Payment) == 0

    @pytest.mark.asyncio
    async def test_wallet_balance_is_read_under_owner_lock(self, seed: Seeder) -> None:
        """Test that spending credit reads the balance through the owner's row lock."""
        user = seed.user()
        fund_wallet(seed, user.user_id, 20000)
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)

        with patch(
            "src.services.reconciliation_service.locked_wallet_balance",
            wraps=locked_wallet_balance,
        ) as mock_locked:
            await ReconciliationService().reconcile_charge(
                wallet_charge("WALLET-4", user.user_id, order.order_id, "course", course.course_id, 10000, "NGN")
            )

        mock_locked.assert_awaited_once()
        assert mock_locked.await_args.args[1] == user.user_id

    @pytest.mark.asyncio
    async def test_second_wallet_payment_sees_first_usage(self, seed: Seeder) -> None:
        """Test that one balance cannot be spent twice across orders."""
        user = seed.user()
        fund_wallet(seed, user.user_id, 10000)
        course = seed.course(price_in_kobo=10000)
        first = seed.order(user.user_id)
        second = seed.order(user.user_id)
        service = ReconciliationService()

        await service.reconcile_charge(
            wallet_charge("WALLET-5", user.user_id, first.order_id, "course", course.course_id, 10000, "NGN")
        )
        with pytest.raises(InsufficientWalletBalanceError):
            await service.reconcile_charge(
                wallet_charge("WALLET-6", user.user_id, second.order_id, "course", course.course_id, 10000, "NGN")
            )

        assert seed.count(WalletUsage) == 1


class TestRecordFailedCharge:
    """Tests for record_failed_charge."""

    @pytest.mark.asyncio
    async def test_pending_order_becomes_failed(self, seed: Seeder) -> None:
        """Test that a failed first attempt marks the order failed."""
        user = seed.user()
        course = seed.course()
        order = seed.order(user.user_id)

        result = await ReconciliationService().record_failed_charge(
            make_charge("ref_fail", order.order_id, CourseTarget(course.course_id), 10000, gateway_status="failed")
        )

        assert result is not None
        assert result.status == "failed"
        assert result.amount_kobo == 0
        payment = seed.all(Payment)[0]
        assert payment.paystack_status == "failed"
        assert seed.get(Order, order.order_id).order_status_id == STATUS_IDS["failed"]

    @pytest.mark.asyncio
    async def test_partially_paid_order_keeps_status(self, seed: Seeder) -> None:
        """Test that a failed installment does not regress a partially paid order."""
        user = seed.user()
        course = seed.course()
        order = seed.order(user.user_id, status="partially_paid", total_expected_amount_kobo=10000, amount_paid_to_date_kobo=4000)

        result = await ReconciliationService().record_failed_charge(
            make_charge("ref_fail_2", order.order_id, CourseTarget(course.course_id), 6000, gateway_status="failed")
        )

        assert result.status == "partially_paid"
        assert seed.get(Order, order.order_id).order_status_id == STATUS_IDS["partially_paid"]

    @pytest.mark.asyncio
    async def test_duplicate_failed_charge(self, seed: Seeder) -> None:
        """Test that a failed reference is recorded once."""
        user = seed.user()
        course = seed.course()
        order = seed.order(user.user_id)
        charge = make_charge("ref_fail_3", order.order_id, CourseTarget(course.course_id), 10000, gateway_status="failed")
        service = ReconciliationService()

        await service.record_failed_charge(charge)
        replay = await service.record_failed_charge(charge)

        assert replay.already_processed is True
        assert seed.count(Payment) == 1

    @pytest.mark.asyncio
    async def test_failed_then_successful_retry(self, seed: Seeder) -> None:
        """Test that a reference can fail and later succeed."""
        user = seed.user()
        course = seed.course(price_in_kobo=10000)
        order = seed.order(user.user_id)
        target = CourseTarget(course.course_id)
        service = ReconciliationService()

        await service.record_failed_charge(make_charge("ref_retry", order.order_id, target, 10000, gateway_status="failed"))
        result = await service.reconcile_charge(make_charge("ref_retry", order.order_id, target, 10000))

        assert result.status == "paid"
        assert sorted(p.paystack_status for p in seed.all(Payment)) == ["failed", "success"]

    @pytest.mark.asyncio
    async def test_rental_without_order_is_skipped(self, seed: Seeder) -> None:
        """Test that a failed rental attempt before any order exists records nothing."""
        user = seed.user()
        booking = seed.booking(user.user_id)

        result = await ReconciliationService().record_failed_charge(
            make_charge("ref_fail_rent", booking.rental_booking_id, RentalTarget(booking.rental_booking_id), 50000, gateway_status="failed")
        )

        assert result is None
        assert seed.count(Payment) == 0

    @pytest.mark.asyncio
    async def test_missing_order_raises(self) -> None:
        """Test that a failed charge for an unknown order is a not-found error."""
        with pytest.raises(ProductNotFoundError):
            await ReconciliationService().record_failed_charge(
                make_charge("ref_fail_ghost", 404, CourseTarget(1), 100, gateway_status="failed")
            )
