"""Custom offer routes."""

from fastapi import APIRouter

from src.api.deps import CurrentUser
from src.schemas.common import ErrorResponse
from src.schemas.offer import OfferAction, OfferActionRequest, OfferResponse
from src.services.offer_service import OfferService

router = APIRouter(prefix="/offers", tags=["offers"])


@router.get(
    "/{offer_id}",
    response_model=OfferResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Offer belongs to another user"},
        404: {"model": ErrorResponse, "description": "Offer not found"},
    },
    summary="Get a custom offer",
    description="Pending offers past their expiry are marked expired on read.",
)
async def get_offer(offer_id: int, user: CurrentUser) -> OfferResponse:
    """Get one of the authenticated user's custom offers.

    Args:
        offer_id: Offer to read.
        user: The authenticated user.

    Returns:
        OfferResponse: The offer with its current status.
    """
    offer = await OfferService().get_offer(offer_id, user.user_id)
    return OfferResponse.model_validate(offer)


@router.post(
    "/{offer_id}/{action}",
    response_model=OfferResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Offer belongs to another user"},
        404: {"model": ErrorResponse, "description": "Offer not found"},
        409: {"model": ErrorResponse, "description": "Offer is no longer pending"},
        410: {"model": ErrorResponse, "description": "Offer has expired"},
    },
    summary="Accept or reject a custom offer",
    description="Only pending offers can be actioned. A rejection may carry a reason.",
)
async def respond_to_offer(
    offer_id: int,
    action: OfferAction,
    user: CurrentUser,
    request: OfferActionRequest | None = None,
) -> OfferResponse:
    """Accept or reject one of the authenticated user's pending offers.

    Args:
        offer_id: Offer to action.
        action: accept or reject.
        user: The authenticated user.
        request: Optional rejection reason.

    Returns:
        OfferResponse: The offer with its new status.
    """
    reason = request.rejection_reason if request else None
    offer = await OfferService().respond_to_offer(offer_id, user.user_id, action, rejection_reason=reason)
    return OfferResponse.model_validate(offer)
