"""Referral commission crediting."""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import get_settings
from src.models.referral import ReferralEarning
from src.models.user import User
from src.services.pricing_service import round_kobo

logger = logging.getLogger(__name__)


class ReferralService:
    """Credits a referrer once, on the referred user's first successful payment."""

    def __init__(self, commission_percent: int | None = None) -> None:
        """Initialize referral service.

        Args:
            commission_percent: Override for the configured commission rate.
        """
        if commission_percent is None:
            commission_percent = get_settings().referral_commission_percent
        self.commission_percent = commission_percent

    def commission_for(self, amount_kobo: int) -> int:
        """Commission owed on an amount, rounded half-up to whole kobo."""
        return round_kobo(Decimal(amount_kobo) * Decimal(self.commission_percent) / Decimal(100))

    async def maybe_credit_referral(
        self,
        session: AsyncSession,
        user_id: int,
        order_id: int,
        amount_kobo: int,
    ) -> ReferralEarning | None:
        """Credit the paying user's referrer if this is their first paid order.

        Must run inside the reconciliation transaction. The unique constraint
        on referred_user_id turns a concurrent double credit into an
        IntegrityError at flush, which rolls the whole transaction back.

        Args:
            session: Session of the surrounding transaction.
            user_id: Paying (referred) user.
            order_id: Order the payment was applied to.
            amount_kobo: Confirmed amount plus wallet usage.

        Returns:
            ReferralEarning | None: The new earning, or None if nothing was credited.
        """
        user = await session.get(User, user_id)
        if user is None or user.referred_by_id is None:
            return None

        existing = await session.scalar(
            select(ReferralEarning.earning_id).where(ReferralEarning.referred_user_id == user_id).limit(1)
        )
        if existing is not None:
            logger.debug("User %s already earned their referrer a commission", user_id)
            return None

        commission = self.commission_for(amount_kobo)
        if commission <= 0:
            return None

        earning = ReferralEarning(
            referrer_id=user.referred_by_id,
            referred_user_id=user_id,
            order_id=order_id,
            amount_kobo=commission,
        )
        session.add(earning)
        await session.flush()

        logger.info(
            "Credited referrer %s with %d kobo for user %s (order %s)",
            user.referred_by_id,
            commission,
            user_id,
            order_id,
        )
        return earning
