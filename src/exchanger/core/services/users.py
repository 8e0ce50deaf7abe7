"""
Account management.

Deleting an account removes the user's listings, every offer the user
proposed or received (with the offers' messages and events) and finally
the user row. It runs on the request's session, so the whole cascade is
committed in one transaction or not at all.

Offers made by other users keep their references to the deleted
listings in ``offered_items``; reads skip them.
"""
from __future__ import annotations

import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import NotFoundError
from ..models import Listing, OfferEvent, OfferMessage, TradeOffer, User

logger = logging.getLogger(__name__)


async def delete_account(db: AsyncSession, user_id: int) -> None:
    """Delete a user and everything they own or negotiated."""
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", user_id=user_id)

    offer_ids = list(
        (
            await db.execute(
                select(TradeOffer.id).where(
                    or_(TradeOffer.from_user_id == user_id, TradeOffer.to_user_id == user_id)
                )
            )
        ).scalars().all()
    )
    if offer_ids:
        await db.execute(delete(OfferEvent).where(OfferEvent.offer_id.in_(offer_ids)))
        await db.execute(delete(OfferMessage).where(OfferMessage.offer_id.in_(offer_ids)))
        await db.execute(delete(TradeOffer).where(TradeOffer.id.in_(offer_ids)))
    listings = await db.execute(delete(Listing).where(Listing.user_id == user_id))
    await db.delete(user)
    await db.flush()
    logger.info(
        "Deleted account %s with %s listings and %s offers",
        user_id,
        listings.rowcount or 0,
        len(offer_ids),
    )
