"""Payment verification and wallet payment routes."""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, status
from fastapi.responses import JSONResponse

from src.api.deps import (
    CurrentUser,
    Notifier,
    Reconciler,
    get_configured_paystack_client,
    schedule_payment_notifications,
)
from src.api.middleware.error_handler import APIError
from src.core.config import get_settings
from src.core.paystack import PaystackError
from src.models.payment import PAYMENT_STATUS_SUCCESS
from src.schemas.common import ErrorResponse
from src.schemas.payment import (
    ChargeData,
    PaymentFailureResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from src.schemas.wallet import WalletPaymentRequest
from src.services.charges import confirmation_from_charge, wallet_charge, wallet_reference
from src.services.errors import GatewayUnavailableError, GatewayVerificationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def _failure(error: APIError) -> JSONResponse:
    headers = {"Retry-After": str(error.retry_after)} if hasattr(error, "retry_after") else None
    return JSONResponse(
        status_code=error.status_code,
        content=PaymentFailureResponse(message=error.message).model_dump(),
        headers=headers,
    )


def successful_transaction(envelope: dict[str, Any], reference: str) -> ChargeData:
    """Extract a successful transaction from a verify API envelope.

    Args:
        envelope: Response body of the transaction lookup.
        reference: Reference the client asked about.

    Returns:
        ChargeData: The confirmed transaction.

    Raises:
        GatewayVerificationError: If the lookup failed or the charge did not succeed.
    """
    if not envelope.get("status") or not isinstance(envelope.get("data"), dict):
        raise GatewayVerificationError(str(envelope.get("message") or "Payment verification failed"))

    try:
        data = ChargeData.model_validate(envelope["data"])
    except ValueError as e:
        raise GatewayVerificationError("Gateway returned an unreadable transaction") from e

    if data.reference != reference:
        logger.warning("Gateway returned reference %s for lookup of %s", data.reference, reference)
        raise GatewayVerificationError("Transaction reference mismatch")
    if data.status != PAYMENT_STATUS_SUCCESS:
        raise GatewayVerificationError(f"Payment was not successful: {data.gateway_response or data.status}")
    return data


@router.post(
    "/verify",
    response_model=VerifyPaymentResponse,
    responses={
        400: {"model": PaymentFailureResponse, "description": "Charge not successful or metadata missing"},
        404: {"model": PaymentFailureResponse, "description": "Order or product not found"},
        500: {"model": PaymentFailureResponse, "description": "Processing failed; safe to retry"},
        502: {"model": PaymentFailureResponse, "description": "Gateway unreachable"},
        503: {"model": PaymentFailureResponse, "description": "Status catalog not ready"},
    },
    summary="Verify a payment",
    description="Look up a transaction with the gateway and apply it to its order.",
)
async def verify_payment(
    request: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    reconciler: Reconciler,
    notifier: Notifier,
) -> VerifyPaymentResponse | JSONResponse:
    """Verify a payment after the customer is redirected back from checkout.

    The gateway, not the client, is the source of truth for the amount
    and outcome. Replays of an already applied reference succeed without
    changing anything.

    Args:
        request: Reference plus optional product id and payment option.
        background_tasks: Runs notifications after the response.
        reconciler: Reconciliation service.
        notifier: Notification dispatcher.

    Returns:
        VerifyPaymentResponse: Order state after reconciliation, or a
        `{success: false, message}` body with the error's status code.
    """
    logger.info("Verifying payment %s", request.reference)

    try:
        client = get_configured_paystack_client()
        envelope = await client.verify_transaction(request.reference)
        data = successful_transaction(envelope, request.reference)
        charge = confirmation_from_charge(data, "verify", request.product_id, request.payment_option)
        result = await reconciler.reconcile_charge(charge)
    except PaystackError as e:
        logger.error("Could not reach gateway to verify %s: %s", request.reference, str(e))
        return _failure(GatewayUnavailableError())
    except APIError as e:
        logger.warning("Verification of %s failed: %s - %s", request.reference, e.error_type, e.message)
        return _failure(e)

    schedule_payment_notifications(background_tasks, notifier, result)

    message = "Payment already processed" if result.already_processed else "Payment verified successfully"
    return VerifyPaymentResponse(success=True, message=message, data=result.to_data())


@router.post(
    "/wallet",
    response_model=VerifyPaymentResponse,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ErrorResponse, "description": "Insufficient balance or bad request"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Order belongs to another user"},
        404: {"model": ErrorResponse, "description": "Order or product not found"},
    },
    summary="Pay from wallet",
    description="Spend referral wallet credit on an order.",
)
async def pay_with_wallet(
    request: WalletPaymentRequest,
    user: CurrentUser,
    background_tasks: BackgroundTasks,
    reconciler: Reconciler,
    notifier: Notifier,
) -> VerifyPaymentResponse:
    """Pay all or part of an order from the wallet.

    Balance check, usage ledger, payment row, order update, and referral
    credit commit together or not at all.

    Args:
        request: Order, amount, and product being paid for.
        user: The authenticated user; must own the order.
        background_tasks: Runs notifications after the response.
        reconciler: Reconciliation service.
        notifier: Notification dispatcher.

    Returns:
        VerifyPaymentResponse: Order state after the payment.
    """
    reference = wallet_reference(user.user_id, request.reference)
    charge = wallet_charge(
        reference=reference,
        payer_id=user.user_id,
        order_id=request.order_id,
        service=request.service,
        product_id=request.product_id,
        amount_kobo=request.amount_kobo,
        currency=get_settings().expected_currency,
        payment_option=request.payment_option,
    )
    logger.info("User %s paying %d kobo from wallet for order %s", user.user_id, request.amount_kobo, request.order_id)

    result = await reconciler.reconcile_charge(charge)
    schedule_payment_notifications(background_tasks, notifier, result)

    message = "Payment already processed" if result.already_processed else "Wallet payment applied"
    return VerifyPaymentResponse(success=True, message=message, data=result.to_data())
