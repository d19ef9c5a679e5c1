"""Email service using Resend for transactional emails."""

import asyncio
import logging
from typing import Any

import resend

from src.core.config import get_settings

logger = logging.getLogger(__name__)


def format_naira(amount_kobo: int) -> str:
    """Render kobo as a naira amount, e.g. 1234550 -> "₦12,345.50"."""
    return f"₦{amount_kobo / 100:,.2f}"


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.from_email = settings.email_from_address
        self.admin_email = settings.admin_email
        self.frontend_url = settings.frontend_url

    async def _send(self, to_email: str, subject: str, html_content: str, text_content: str) -> dict[str, Any]:
        try:
            # resend is a blocking client
            response = await asyncio.to_thread(resend.Emails.send, {
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html_content,
                "text": text_content,
            })

            logger.info("Email %r sent to %s, id: %s", subject, to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send email %r to %s: %s", subject, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_payment_received_email(
        self,
        to_email: str,
        customer_name: str,
        order_id: int,
        amount_kobo: int,
        course_title: str | None = None,
    ) -> dict[str, Any]:
        """Send a payment confirmation email.

        Args:
            to_email: Recipient email address.
            customer_name: Name used in the greeting.
            order_id: Order the payment was applied to.
            amount_kobo: Amount received, in kobo.
            course_title: Set when the payment was for a course.

        Returns:
            dict: Result with success flag and email ID or error.
        """
        dashboard_url = f"{self.frontend_url}/user/dashboard/orders/{order_id}"
        amount = format_naira(amount_kobo)
        if course_title:
            subject = "Payment Received - You Have Purchased a New Course"
            next_step = f"Go to your dashboard to view more details about your course {course_title}."
        else:
            subject = "Payment Received - Your Project is Underway!"
            next_step = (
                "Work will begin on your project right away! To see and track the progress "
                "of your current project, please go to your dashboard."
            )

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{subject}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <p>Hello {customer_name},</p>
    <p>We have successfully received your payment of <strong>{amount}</strong> for Order ID: <strong>{order_id}</strong>.</p>
    <p>{next_step}</p>
    <div style="text-align: center; margin: 30px 0;">
        <a href="{dashboard_url}" style="background: #008751; color: white; padding: 12px 28px; text-decoration: none; border-radius: 6px; font-weight: 600;">
            Go to Your Dashboard
        </a>
    </div>
    <p>Thanks,<br>The Bravework Studio Team</p>
</body>
</html>
"""

        text_content = f"""
Hello {customer_name},

We have successfully received your payment of {amount} for Order ID: {order_id}.

{next_step}
{dashboard_url}

Thanks,
The Bravework Studio Team
"""
        return await self._send(to_email, subject, html_content, text_content)

    async def send_admin_payment_alert(
        self,
        customer_email: str,
        order_id: int,
        amount_kobo: int,
        status: str,
        reference: str,
    ) -> dict[str, Any]:
        """Alert the admin inbox about a reconciled payment.

        Returns:
            dict: Result with success flag, or a skipped marker when no admin address is configured.
        """
        if not self.admin_email:
            return {"success": False, "skipped": True}

        amount = format_naira(amount_kobo)
        subject = f"Payment received for order #{order_id}"
        text_content = (
            f"{customer_email} paid {amount} (reference {reference}).\n"
            f"Order #{order_id} is now {status.replace('_', ' ')}.\n"
        )
        html_content = f"<p>{text_content.replace(chr(10), '<br>')}</p>"
        return await self._send(self.admin_email, subject, html_content, text_content)

    async def send_invoice_reminder_email(
        self,
        to_email: str,
        customer_name: str,
        order_id: int,
        title: str | None,
        outstanding_kobo: int,
    ) -> dict[str, Any]:
        """Remind a customer about an unpaid balance.

        Args:
            to_email: Recipient email address.
            customer_name: Name used in the greeting.
            order_id: Order with the outstanding balance.
            title: Order title, if any.
            outstanding_kobo: Amount still owed, in kobo.

        Returns:
            dict: Result with success flag and email ID or error.
        """
        payment_url = f"{self.frontend_url}/user/dashboard/orders/{order_id}"
        amount = format_naira(outstanding_kobo)
        label = title or f"Order #{order_id}"
        subject = f"Payment reminder: {label}"

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{subject}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <p>Hello {customer_name},</p>
    <p>This is a friendly reminder that <strong>{amount}</strong> is still outstanding on <strong>{label}</strong>.</p>
    <div style="text-align: center; margin: 30px 0;">
        <a href="{payment_url}" style="background: #008751; color: white; padding: 12px 28px; text-decoration: none; border-radius: 6px; font-weight: 600;">
            Complete Payment
        </a>
    </div>
    <p style="font-size: 12px; color: #9ca3af;">If you have already paid, you can safely ignore this email.</p>
</body>
</html>
"""

        text_content = f"""
Hello {customer_name},

This is a friendly reminder that {amount} is still outstanding on {label}.

Complete your payment here:
{payment_url}

If you have already paid, you can safely ignore this email.
"""
        return await self._send(to_email, subject, html_content, text_content)
