"""Webhook API routes for the payment gateway."""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Request, status
from fastapi.responses import JSONResponse

from src.api.deps import Notifier, Reconciler, schedule_payment_notifications
from src.api.middleware.error_handler import APIError, ValidationError
from src.core.config import get_settings
from src.core.paystack import verify_signature
from src.schemas.payment import ChargeData, WebhookAck, WebhookEvent
from src.services.charges import confirmation_from_charge
from src.services.errors import ConfigurationError, SignatureInvalidError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADER = "x-paystack-signature"
CHARGE_SUCCESS = "charge.success"
CHARGE_FAILED = "charge.failed"


def _ack(error: APIError) -> JSONResponse:
    headers = {"Retry-After": str(error.retry_after)} if hasattr(error, "retry_after") else None
    return JSONResponse(
        status_code=error.status_code,
        content=WebhookAck(message=error.message).model_dump(),
        headers=headers,
    )


@router.post(
    "/paystack",
    response_model=WebhookAck,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": WebhookAck, "description": "Bad signature, unreadable body, or missing metadata"},
        500: {"model": WebhookAck, "description": "Processing failed; the gateway will retry"},
        503: {"model": WebhookAck, "description": "Status catalog not ready; the gateway will retry"},
    },
    summary="Handle Paystack webhooks",
    description="Receives charge events. Requires a valid x-paystack-signature.",
)
async def paystack_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    reconciler: Reconciler,
    notifier: Notifier,
) -> WebhookAck | JSONResponse:
    """Handle Paystack webhook events.

    The signature is checked against the raw body before anything is
    parsed. Handles:
    - charge.success: applies the payment to its order
    - charge.failed: records the failed attempt
    Other events are acknowledged and ignored.

    Args:
        request: FastAPI request object for reading raw body and headers.
        background_tasks: Runs notifications after the response.
        reconciler: Reconciliation service.
        notifier: Notification dispatcher.

    Returns:
        WebhookAck: Acknowledgment message; non-2xx makes the gateway retry.
    """
    payload = await request.body()
    secret = get_settings().paystack_secret_key

    try:
        if not secret:
            logger.error("Webhook received but PAYSTACK_SECRET_KEY is not configured")
            raise ConfigurationError()

        if not verify_signature(payload, request.headers.get(SIGNATURE_HEADER), secret):
            logger.warning("Rejected webhook with invalid signature (%d bytes)", len(payload))
            raise SignatureInvalidError()

        try:
            event = WebhookEvent.model_validate(json.loads(payload))
        except ValueError as e:
            raise ValidationError("Invalid JSON payload") from e

        logger.info("Processing Paystack webhook event: %s", event.event)
        if event.event not in (CHARGE_SUCCESS, CHARGE_FAILED):
            logger.debug("Unhandled webhook event type: %s", event.event)
            return WebhookAck(message="Event ignored")

        try:
            data = ChargeData.model_validate(event.data)
        except ValueError as e:
            raise ValidationError("Invalid charge data") from e

        charge = confirmation_from_charge(data, "webhook")

        if event.event == CHARGE_FAILED:
            failed = await reconciler.record_failed_charge(charge)
            if failed is not None and failed.already_processed:
                return WebhookAck(message="Failed charge already recorded")
            return WebhookAck(message="Failed charge recorded")

        result = await reconciler.reconcile_charge(charge)

    except APIError as e:
        return _ack(e)

    if result.already_processed:
        return WebhookAck(message="Payment already processed")

    schedule_payment_notifications(background_tasks, notifier, result)
    return WebhookAck(message="Webhook processed successfully")
