"""Custom offer reads and responses, with lazy expiry."""

import logging

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.middleware.error_handler import AuthorizationError, ConflictError, NotFoundError
from src.core.database import get_session_factory
from src.models.base import as_utc, utcnow
from src.models.offer import CustomOffer, OfferStatus
from src.schemas.offer import OfferAction

logger = logging.getLogger(__name__)

_ACTION_STATUS = {
    OfferAction.ACCEPT: OfferStatus.ACCEPTED,
    OfferAction.REJECT: OfferStatus.REJECTED,
}


def is_expired(offer: CustomOffer) -> bool:
    """True if a pending offer's expiry time has passed."""
    expires_at = as_utc(offer.expires_at)
    return offer.status == OfferStatus.PENDING.value and expires_at is not None and expires_at < utcnow()


class OfferService:
    """Service for reading and responding to custom offers."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_factory = session_factory or get_session_factory()

    async def get_offer(self, offer_id: int, user_id: int) -> CustomOffer:
        """Get an offer owned by the user, expiring it first if its time has passed.

        Args:
            offer_id: Offer to read.
            user_id: Authenticated user; must own the offer.

        Returns:
            CustomOffer: The offer with its current status.

        Raises:
            NotFoundError: If the offer does not exist.
            AuthorizationError: If the offer belongs to someone else.
        """
        async with self.session_factory() as session:
            async with session.begin():
                offer = await self._owned_offer(session, offer_id, user_id)
                if is_expired(offer):
                    self._expire(offer)
            return offer

    async def respond_to_offer(
        self,
        offer_id: int,
        user_id: int,
        action: OfferAction,
        rejection_reason: str | None = None,
    ) -> CustomOffer:
        """Accept or reject a pending offer.

        A lapsed offer is marked expired before the refusal is raised, so the
        expiry is persisted even though the action fails.

        Raises:
            NotFoundError: If the offer does not exist.
            AuthorizationError: If the offer belongs to someone else.
            ConflictError: 409 if the offer is no longer pending, 410 if it has expired.
        """
        async with self.session_factory() as session:
            async with session.begin():
                offer = await self._owned_offer(session, offer_id, user_id)
                expired = is_expired(offer)
                if expired:
                    self._expire(offer)
                elif offer.status != OfferStatus.PENDING.value:
                    raise ConflictError(f"Offer is already {offer.status}. Cannot {action.value}.")
                else:
                    offer.status = _ACTION_STATUS[action].value
                    if action is OfferAction.REJECT:
                        offer.rejection_reason = rejection_reason
                    logger.info("Offer %s %s by user %s", offer.offer_id, offer.status, user_id)

        if expired:
            raise ConflictError("Offer has expired", status_code=status.HTTP_410_GONE)
        return offer

    @staticmethod
    async def _owned_offer(session: AsyncSession, offer_id: int, user_id: int) -> CustomOffer:
        offer = await session.get(CustomOffer, offer_id)
        if offer is None:
            raise NotFoundError(f"Offer {offer_id} not found")
        if offer.user_id != user_id:
            raise AuthorizationError("You do not have access to this offer")
        return offer

    @staticmethod
    def _expire(offer: CustomOffer) -> None:
        offer.status = OfferStatus.EXPIRED.value
        logger.info("Offer %s expired at %s", offer.offer_id, offer.expires_at)
