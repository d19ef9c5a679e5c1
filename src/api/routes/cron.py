"""Scheduled job routes, called by the platform scheduler."""

import logging

from fastapi import APIRouter

from src.api.deps import CronAuth
from src.schemas.common import ErrorResponse, ReminderRunResponse
from src.services.reminder_service import ReminderService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


@router.get(
    "/reminders",
    response_model=ReminderRunResponse,
    responses={401: {"model": ErrorResponse, "description": "Missing or wrong cron secret"}},
    summary="Send unpaid invoice reminders",
    description="Emails every customer with an outstanding balance. Requires Bearer CRON_SECRET.",
)
async def run_reminders(_: CronAuth) -> ReminderRunResponse:
    """Send payment reminders for partially paid and unpaid orders.

    Returns:
        ReminderRunResponse: How many reminders were sent and how many failed.
    """
    logger.info("Running unpaid invoice reminders")
    summary = await ReminderService().send_unpaid_reminders()
    return ReminderRunResponse(
        message="Reminders processed",
        total=summary.total,
        success_count=summary.success_count,
        failure_count=summary.failure_count,
    )
