"""Wallet balance derived from referral and rental earnings minus wallet usages."""

import logging
from dataclasses import dataclass

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_session_factory
from src.models.referral import ReferralEarning, RentalEarning, WalletUsage
from src.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletBalance:
    """Snapshot of a user's wallet."""

    total_earned_kobo: int
    total_used_kobo: int

    @property
    def balance_kobo(self) -> int:
        return self.total_earned_kobo - self.total_used_kobo


async def wallet_balance(session: AsyncSession, user_id: int) -> WalletBalance:
    """Sum a user's earnings and usages within an open session.

    Earnings are referral commissions plus released rental income.
    """
    referrals = await session.scalar(
        select(func.coalesce(func.sum(ReferralEarning.amount_kobo), 0)).where(ReferralEarning.referrer_id == user_id)
    )
    rentals = await session.scalar(
        select(func.coalesce(func.sum(RentalEarning.amount_kobo), 0)).where(RentalEarning.user_id == user_id)
    )
    used = await session.scalar(
        select(func.coalesce(func.sum(WalletUsage.amount_kobo), 0)).where(WalletUsage.user_id == user_id)
    )
    return WalletBalance(
        total_earned_kobo=int(referrals or 0) + int(rentals or 0),
        total_used_kobo=int(used or 0),
    )


def wallet_lock_statement(user_id: int) -> Select:
    """Row lock on the wallet owner. Serializes balance checks for one user."""
    return select(User.user_id).where(User.user_id == user_id).with_for_update()


async def locked_wallet_balance(session: AsyncSession, user_id: int) -> WalletBalance:
    """Lock the owner's row, then read the balance.

    Concurrent spenders of the same wallet wait on the lock, so the balance
    they read already includes every committed usage.
    """
    await session.execute(wallet_lock_statement(user_id))
    return await wallet_balance(session, user_id)


def clamp_wallet_usage(requested_kobo: int, available_kobo: int) -> int:
    """Limit a declared wallet usage to what the wallet actually holds."""
    return max(0, min(requested_kobo, available_kobo))


class WalletService:
    """Read-side wallet operations."""

    def __init__(self) -> None:
        """Initialize wallet service with the session factory."""
        self.session_factory = get_session_factory()

    async def get_balance(self, user_id: int) -> WalletBalance:
        """Get the current wallet balance for a user.

        Args:
            user_id: Wallet owner.

        Returns:
            WalletBalance: Earned, used, and available amounts in kobo.
        """
        async with self.session_factory() as session:
            return await wallet_balance(session, user_id)
