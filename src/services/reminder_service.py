"""Unpaid invoice reminders for the scheduled job."""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.database import get_session_factory
from src.models.order import ORDER_STATUS_PARTIALLY_PAID, ORDER_STATUS_PENDING, Order
from src.models.user import User
from src.services.email_service import EmailService
from src.services.status_catalog import StatusCatalog, get_status_catalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderSummary:
    """Counts reported back to the scheduler."""

    total: int
    success_count: int
    failure_count: int


class ReminderService:
    """Emails customers whose orders still have an outstanding balance."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        catalog: StatusCatalog | None = None,
        email_service: EmailService | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.catalog = catalog or get_status_catalog()
        self.email_service = email_service or EmailService()

    async def find_unpaid_orders(self) -> list[tuple[Order, User]]:
        """Orders that are partially paid, or pending with an amount due."""
        statuses = await self.catalog.ensure_loaded()
        stmt = (
            select(Order, User)
            .join(User, User.user_id == Order.user_id)
            .where(
                Order.total_expected_amount_kobo > Order.amount_paid_to_date_kobo,
                or_(
                    Order.order_status_id == statuses[ORDER_STATUS_PARTIALLY_PAID],
                    and_(
                        Order.order_status_id == statuses[ORDER_STATUS_PENDING],
                        Order.total_expected_amount_kobo > 0,
                    ),
                ),
            )
            .order_by(Order.order_id)
        )
        async with self.session_factory() as session:
            rows = await session.execute(stmt)
            return [(order, user) for order, user in rows.all()]

    async def send_unpaid_reminders(self) -> ReminderSummary:
        """Send one reminder per unpaid order.

        Returns:
            ReminderSummary: How many reminders were attempted, sent, and failed.
        """
        unpaid = await self.find_unpaid_orders()
        logger.info("Found %d unpaid orders to remind", len(unpaid))

        results = await asyncio.gather(
            *(
                self.email_service.send_invoice_reminder_email(
                    to_email=user.email,
                    customer_name=user.full_name,
                    order_id=order.order_id,
                    title=order.title,
                    outstanding_kobo=order.outstanding_kobo,
                )
                for order, user in unpaid
            ),
            return_exceptions=True,
        )

        success_count = 0
        for (order, _), outcome in zip(unpaid, results):
            if isinstance(outcome, BaseException):
                logger.error("Reminder for order %s raised: %s", order.order_id, str(outcome))
            elif outcome.get("success"):
                success_count += 1

        summary = ReminderSummary(
            total=len(unpaid),
            success_count=success_count,
            failure_count=len(unpaid) - success_count,
        )
        logger.info("Reminders processed: %d sent, %d failed", summary.success_count, summary.failure_count)
        return summary
