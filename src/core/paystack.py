"""Paystack API client and webhook signature verification."""

import hashlib
import hmac
import logging
from functools import lru_cache
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 1
MAX_WAIT_SECONDS = 8


class PaystackError(Exception):
    """Paystack could not be reached or answered with a server error."""


class PaystackServerError(PaystackError):
    """Paystack returned a 5xx response. Retryable."""


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """Check a webhook signature against the raw request body.

    Paystack signs the exact bytes it sends with HMAC-SHA512 keyed by the
    account secret key. The body must not be parsed and re-serialized
    before hashing.

    Args:
        raw_body: Request body bytes exactly as received.
        signature: Value of the x-paystack-signature header.
        secret: Paystack secret key.

    Returns:
        bool: True only if the signature matches.
    """
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("ascii", "ignore"))


def sign_payload(raw_body: bytes, secret: str) -> str:
    """Compute the signature Paystack would send for a body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


class PaystackClient:
    """Thin async client for the Paystack transactions API."""

    def __init__(self, secret_key: str, base_url: str, timeout: float = 30.0) -> None:
        """Initialize the client.

        Args:
            secret_key: Paystack secret key used as bearer token.
            base_url: API base URL.
            timeout: Request timeout in seconds.
        """
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, PaystackServerError)),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    async def _get(self, path: str) -> dict[str, Any]:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
            response = await client.get(
                path,
                headers={
                    "Authorization": f"Bearer {self.secret_key}",
                    "Content-Type": "application/json",
                },
            )
        if response.status_code >= 500:
            logger.warning("Paystack returned %d for %s", response.status_code, path)
            raise PaystackServerError(f"Paystack returned {response.status_code}")
        return response.json()

    async def verify_transaction(self, reference: str) -> dict[str, Any]:
        """Look up a transaction by reference.

        Args:
            reference: Paystack transaction reference.

        Returns:
            dict: Full API envelope ({"status": bool, "message": str, "data": {...}}).

        Raises:
            PaystackError: If Paystack is unreachable after retries.
        """
        try:
            return await self._get(f"/transaction/verify/{reference}")
        except (httpx.TransportError, PaystackServerError) as e:
            logger.error("Paystack verify failed for %s after %d attempts: %s", reference, MAX_RETRIES, str(e))
            raise PaystackError(str(e)) from e


@lru_cache
def get_paystack_client() -> PaystackClient:
    """Get cached Paystack client configured from settings."""
    settings = get_settings()
    if not settings.paystack_secret_key:
        logger.warning("Paystack secret key not configured. Payment verification will not work.")
    return PaystackClient(
        secret_key=settings.paystack_secret_key,
        base_url=settings.paystack_base_url,
        timeout=settings.paystack_timeout_seconds,
    )
