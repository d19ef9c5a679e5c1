"""Payment reconciliation error taxonomy.

Every error maps to an HTTP status through APIError. "Already processed"
is not an error and is reported through ReconciliationResult instead.
"""

from typing import Any

from fastapi import status

from src.api.middleware.error_handler import APIError, ServiceUnavailableError


class SignatureInvalidError(APIError):
    """Webhook signature did not match the raw body. Terminal."""

    def __init__(self, message: str = "Signature verification failed.") -> None:
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, error_type="signature_invalid")


class MissingMetadataError(APIError):
    """Charge metadata lacks orderId, service, or the product id."""

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="missing_metadata",
            details=details,
        )


class StatusCatalogNotReadyError(ServiceUnavailableError):
    """Order status catalog could not be loaded. Retryable."""

    def __init__(self, message: str = "Order status catalog is not ready.") -> None:
        super().__init__(message=message, retry_after=5)
        self.error_type = "not_ready"


class UnknownPaymentOptionError(APIError):
    """Payment option is not one of the recognised options. Terminal."""

    def __init__(self, option: str | None) -> None:
        super().__init__(
            message=f"Unknown payment option: {option!r}",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="unknown_payment_option",
        )
        self.option = option


class ProductNotFoundError(APIError):
    """Course, offer, booking, or order referenced by a charge does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, status_code=status.HTTP_404_NOT_FOUND, error_type="product_not_found")


class GatewayVerificationError(APIError):
    """The gateway reports the transaction as not successful."""

    def __init__(self, message: str = "Payment verification failed", details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="gateway_verification_failed",
            details=details,
        )


class GatewayUnavailableError(APIError):
    """The gateway could not be reached."""

    def __init__(self, message: str = "Payment gateway unavailable") -> None:
        super().__init__(message=message, status_code=status.HTTP_502_BAD_GATEWAY, error_type="gateway_unavailable")


class ConfigurationError(APIError):
    """A required secret is not configured."""

    def __init__(self, message: str = "Server configuration error") -> None:
        super().__init__(message=message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, error_type="configuration_error")


class TransactionFailureError(APIError):
    """The reconciliation transaction rolled back. Nothing was persisted; safe to retry."""

    def __init__(self, message: str = "Internal server error processing payment.") -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_type="transaction_failure",
        )


class InsufficientWalletBalanceError(APIError):
    """Wallet balance does not cover the requested amount."""

    def __init__(self, balance_kobo: int, requested_kobo: int) -> None:
        super().__init__(
            message="Insufficient wallet balance",
            status_code=status.HTTP_400_BAD_REQUEST,
            error_type="insufficient_wallet_balance",
            details=[{"msg": f"balance {balance_kobo} < requested {requested_kobo}", "type": "wallet"}],
        )


class ProductMismatchError(APIError):
    """The product named by a charge does not belong to the charged order. Terminal."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, status_code=status.HTTP_400_BAD_REQUEST, error_type="product_mismatch")
