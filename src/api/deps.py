"""FastAPI dependency injection functions."""

import hmac
from typing import Annotated

from fastapi import BackgroundTasks, Depends, Header, HTTPException, status

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.core.config import get_settings
from src.core.paystack import PaystackClient, get_paystack_client
from src.schemas.auth import UserContext
from src.services.errors import ConfigurationError
from src.services.notification_service import NotificationService
from src.services.reconciliation_service import ReconciliationResult, ReconciliationService


def _bearer_token(authorization: str) -> str:
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return parts[1]


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        HTTPException: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = _bearer_token(authorization)

    try:
        payload = decode_jwt(token)
        return payload.to_user_context()

    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
                headers={"WWW-Authenticate": "Bearer"},
            ) from e

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not a user id",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def verify_cron_secret(
    authorization: Annotated[str, Header(description="Bearer <CRON_SECRET>")] = "",
) -> None:
    """Allow only the scheduler, which presents the shared cron secret.

    Raises:
        HTTPException: 401 if the secret is unset, missing, or wrong.
    """
    secret = get_settings().cron_secret
    expected = f"Bearer {secret}"
    if not secret or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_configured_paystack_client() -> PaystackClient:
    """Return the gateway client, refusing to run without a secret key.

    Raises:
        ConfigurationError: If PAYSTACK_SECRET_KEY is not set.
    """
    client = get_paystack_client()
    if not client.is_configured:
        raise ConfigurationError("Payment gateway is not configured")
    return client


def get_reconciliation_service() -> ReconciliationService:
    return ReconciliationService()


def get_notification_service() -> NotificationService:
    return NotificationService()


def schedule_payment_notifications(
    background_tasks: BackgroundTasks,
    notifier: NotificationService,
    result: ReconciliationResult,
) -> None:
    """Queue the post-commit notifications for a new payment."""
    if not result.already_processed:
        background_tasks.add_task(notifier.notify_payment, result)


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
CronAuth = Annotated[None, Depends(verify_cron_secret)]
Reconciler = Annotated[ReconciliationService, Depends(get_reconciliation_service)]
Notifier = Annotated[NotificationService, Depends(get_notification_service)]
