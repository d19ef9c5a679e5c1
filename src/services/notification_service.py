"""Post-commit payment notifications: in-app rows, emails, and mailing-list sign-up."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.database import get_session_factory
from src.models.notification import Notification
from src.models.user import User
from src.services.charges import ServiceType
from src.services.email_service import EmailService, format_naira
from src.services.mailing_list_service import MailingListService
from src.services.reconciliation_service import ReconciliationResult

logger = logging.getLogger(__name__)


class NotificationService:
    """Dispatches the side effects of a committed reconciliation.

    Runs after the financial transaction has committed. Each step is
    isolated: a failure is logged and the remaining steps still run.
    Nothing here raises to the caller.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        email_service: EmailService | None = None,
        mailing_list: MailingListService | None = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.email_service = email_service or EmailService()
        self.mailing_list = mailing_list or MailingListService()

    async def create_notification(
        self,
        title: str,
        message: str,
        user_id: int | None = None,
        link: str = "",
        is_admin: bool = False,
    ) -> int:
        """Insert a notification row in its own transaction.

        Returns:
            int: The new notification id.
        """
        async with self.session_factory() as session:
            async with session.begin():
                notification = Notification(
                    user_id=user_id,
                    is_admin=is_admin,
                    title=title,
                    message=message,
                    link=link,
                )
                session.add(notification)
                await session.flush()
                return notification.notification_id

    async def notify_payment(self, result: ReconciliationResult) -> None:
        """Send every notification for a newly reconciled payment.

        Args:
            result: Outcome of a committed reconciliation. Replays
                (already_processed) are ignored.
        """
        if result.already_processed:
            return

        user = await self._load_user(result.user_id)
        email = result.customer_email or (user.email if user else None)
        name = user.full_name if user else (email or "there")
        is_course = result.service is ServiceType.COURSE
        amount = format_naira(result.amount_kobo)
        link = f"/user/dashboard/orders/{result.order_id}"

        try:
            if is_course:
                message = f"We have received your payment for course {result.title}. (Order ID: {result.order_id})"
            else:
                message = f"Payment of {amount} received for Order ID: {result.order_id}. Your project is now underway!"
            await self.create_notification(
                title="Payment Received",
                message=message,
                user_id=result.user_id,
                link=link,
            )
        except Exception:
            logger.exception("Failed to create user notification for order %s", result.order_id)

        try:
            await self.create_notification(
                title=f"Payment received for order #{result.order_id}",
                message=f"{email or result.user_id} paid {amount} (reference {result.reference}). Status: {result.status}.",
                link=f"/admin/orders/{result.order_id}",
                is_admin=True,
            )
        except Exception:
            logger.exception("Failed to create admin notification for order %s", result.order_id)

        if email:
            try:
                await self.email_service.send_payment_received_email(
                    to_email=email,
                    customer_name=name,
                    order_id=result.order_id,
                    amount_kobo=result.amount_kobo,
                    course_title=result.title if is_course else None,
                )
            except Exception:
                logger.exception("Failed to send payment email for order %s", result.order_id)
        else:
            logger.warning("No email address for order %s; skipping payment email", result.order_id)

        try:
            await self.email_service.send_admin_payment_alert(
                customer_email=email or str(result.user_id),
                order_id=result.order_id,
                amount_kobo=result.amount_kobo,
                status=result.status,
                reference=result.reference,
            )
        except Exception:
            logger.exception("Failed to send admin alert for order %s", result.order_id)

        if is_course and result.is_paid and result.mailing_group and email:
            try:
                await self.mailing_list.subscribe_to_group(email, name, result.mailing_group)
            except Exception:
                logger.exception("Failed to subscribe %s to mailing group %r", email, result.mailing_group)

    async def _load_user(self, user_id: int) -> User | None:
        try:
            async with self.session_factory() as session:
                return await session.get(User, user_id)
        except Exception:
            logger.exception("Failed to load user %s for notifications", user_id)
            return None
