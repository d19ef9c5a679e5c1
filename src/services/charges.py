"""Service types, payment options, and the normalized charge passed to reconciliation."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Literal
from uuid import uuid4

from src.models.payment import PAYMENT_STATUS_SUCCESS
from src.schemas.payment import ChargeData, ChargeMetadata
from src.services.errors import MissingMetadataError, UnknownPaymentOptionError


class ServiceType(str, Enum):
    """What a charge pays for."""

    COURSE = "course"
    CUSTOM_OFFER = "custom-offer"
    RENTAL = "rental"


class PaymentOption(str, Enum):
    """Percentage-based ways to pay a custom offer."""

    DEPOSIT_50 = "deposit_50"
    DEPOSIT_70_DISCOUNT = "deposit_70_discount"
    FULL_100_DISCOUNT = "full_100_discount"

    @property
    def multiplier(self) -> Decimal:
        """Share of the base price charged, discount included."""
        return _MULTIPLIERS[self]

    @property
    def discount_percentage(self) -> int:
        return _DISCOUNTS[self]

    @classmethod
    def parse(cls, value: str | None) -> "PaymentOption":
        """Parse an option name, raising UnknownPaymentOptionError if unrecognised."""
        try:
            return cls(value)
        except ValueError as e:
            raise UnknownPaymentOptionError(value) from e


_MULTIPLIERS = {
    PaymentOption.DEPOSIT_50: Decimal("0.50"),
    PaymentOption.DEPOSIT_70_DISCOUNT: Decimal("0.70") * Decimal("0.95"),
    PaymentOption.FULL_100_DISCOUNT: Decimal("0.90"),
}

_DISCOUNTS = {
    PaymentOption.DEPOSIT_50: 0,
    PaymentOption.DEPOSIT_70_DISCOUNT: 5,
    PaymentOption.FULL_100_DISCOUNT: 10,
}

WALLET_REFERENCE_PREFIX = "WALLET-"


@dataclass(frozen=True)
class CourseTarget:
    """Charge for a course enrollment."""

    course_id: int
    kind: Literal[ServiceType.COURSE] = ServiceType.COURSE


@dataclass(frozen=True)
class CustomOfferTarget:
    """Charge against a negotiated custom offer."""

    offer_id: int
    kind: Literal[ServiceType.CUSTOM_OFFER] = ServiceType.CUSTOM_OFFER


@dataclass(frozen=True)
class RentalTarget:
    """Charge for a hardware rental booking."""

    booking_id: int
    kind: Literal[ServiceType.RENTAL] = ServiceType.RENTAL


ServiceTarget = CourseTarget | CustomOfferTarget | RentalTarget
PricedTarget = CourseTarget | CustomOfferTarget

ChargeSource = Literal["verify", "webhook", "wallet"]


@dataclass(frozen=True)
class ChargeConfirmation:
    """A gateway-confirmed (or wallet) charge, normalized for reconciliation.

    declared_discount and declared_original_amount_kobo are what the client
    claimed at checkout; they are logged but never used for pricing.
    payer_id is set for wallet payments, where the order must belong to
    the authenticated user.
    """

    reference: str
    amount_kobo: int
    currency: str
    gateway_status: str
    order_id: int
    target: ServiceTarget
    source: ChargeSource
    payment_option: str | None = None
    gateway_response: str | None = None
    customer_email: str | None = None
    wallet_usage_kobo: int = 0
    declared_discount: Decimal | None = None
    declared_original_amount_kobo: int | None = None
    payer_id: int | None = None


def parse_target(metadata: ChargeMetadata, product_id: int | None = None) -> ServiceTarget:
    """Build the service target a charge pays for.

    Args:
        metadata: Charge metadata.
        product_id: Product id supplied out of band (verify request body);
            takes precedence over the id in metadata.

    Returns:
        ServiceTarget: Exactly one variant.

    Raises:
        MissingMetadataError: If the service is missing/unknown or has no product id.
    """
    if not metadata.service:
        raise MissingMetadataError("Missing service in metadata.")
    try:
        service = ServiceType(metadata.service)
    except ValueError as e:
        raise MissingMetadataError(f"Unknown service in metadata: {metadata.service!r}") from e

    if service is ServiceType.COURSE:
        course_id = product_id if product_id is not None else metadata.course_id
        if course_id is None:
            raise MissingMetadataError("Missing courseId in metadata.")
        return CourseTarget(course_id=course_id)

    if service is ServiceType.CUSTOM_OFFER:
        offer_id = product_id if product_id is not None else metadata.offer_id
        if offer_id is None:
            raise MissingMetadataError("Missing offerId in metadata.")
        return CustomOfferTarget(offer_id=offer_id)

    # Checkout sets orderId to the booking id for rentals
    booking_id = product_id if product_id is not None else (metadata.booking_id or metadata.order_id)
    if booking_id is None:
        raise MissingMetadataError("Missing bookingId in metadata.")
    return RentalTarget(booking_id=booking_id)


def confirmation_from_charge(
    data: ChargeData,
    source: ChargeSource,
    product_id: int | None = None,
    payment_option: str | None = None,
) -> ChargeConfirmation:
    """Normalize a gateway transaction into a ChargeConfirmation.

    Args:
        data: Transaction object from verify or a charge.* webhook.
        source: Which entry point received it.
        product_id: Optional product id from the verify request.
        payment_option: Optional option from the verify request.

    Raises:
        MissingMetadataError: If orderId or service is missing.
    """
    metadata = data.metadata
    if metadata is None or metadata.order_id is None:
        raise MissingMetadataError("Missing orderId in metadata.")
    target = parse_target(metadata, product_id)

    return ChargeConfirmation(
        reference=data.reference,
        amount_kobo=data.amount,
        currency=data.currency,
        gateway_status=data.status or PAYMENT_STATUS_SUCCESS,
        order_id=metadata.order_id,
        target=target,
        source=source,
        payment_option=payment_option or metadata.payment_option,
        gateway_response=data.gateway_response,
        customer_email=data.customer_email,
        wallet_usage_kobo=metadata.wallet_usage_kobo,
        declared_discount=metadata.discount_applied,
        declared_original_amount_kobo=metadata.original_amount_kobo,
    )


def wallet_charge(
    reference: str,
    payer_id: int,
    order_id: int,
    service: str,
    product_id: int | None,
    amount_kobo: int,
    currency: str,
    payment_option: str | None = None,
) -> ChargeConfirmation:
    """Build the charge for a payment made entirely from wallet credit.

    Raises:
        MissingMetadataError: If the service or product id is missing.
    """
    metadata = ChargeMetadata(service=service, order_id=order_id)
    return ChargeConfirmation(
        reference=reference,
        amount_kobo=0,
        currency=currency,
        gateway_status=PAYMENT_STATUS_SUCCESS,
        order_id=order_id,
        target=parse_target(metadata, product_id),
        source="wallet",
        payment_option=payment_option,
        gateway_response="Paid from wallet",
        wallet_usage_kobo=amount_kobo,
        payer_id=payer_id,
    )


def wallet_reference(user_id: int, client_reference: str | None = None) -> str:
    """Reference for a wallet payment, namespaced per user.

    Wallet references share the payments table with gateway references, so
    a client-chosen value is always prefixed and can never equal a gateway
    reference or another user's wallet reference.

    >>> wallet_reference(7, "retry-1")
    'WALLET-7-retry-1'
    """
    suffix = client_reference or uuid4().hex
    return f"{WALLET_REFERENCE_PREFIX}{user_id}-{suffix}"
