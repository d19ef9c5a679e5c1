"""Wallet balance routes."""

from fastapi import APIRouter

from src.api.deps import CurrentUser
from src.schemas.common import ErrorResponse
from src.schemas.wallet import WalletBalanceResponse
from src.services.wallet_service import WalletService

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get(
    "",
    response_model=WalletBalanceResponse,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
    summary="Get wallet balance",
    description="Referral earnings minus credit already spent.",
)
async def get_wallet(user: CurrentUser) -> WalletBalanceResponse:
    """Get the authenticated user's wallet balance.

    Args:
        user: The authenticated user.

    Returns:
        WalletBalanceResponse: Balance and lifetime totals in kobo.
    """
    balance = await WalletService().get_balance(user.user_id)
    return WalletBalanceResponse(
        balance_kobo=balance.balance_kobo,
        total_earned_kobo=balance.total_earned_kobo,
        total_used_kobo=balance.total_used_kobo,
    )
