"""
Negotiation thread of a trade offer.

Participants (the proposer and the listing owner) append messages to the
offer they are negotiating. Messages are never edited or removed; the
thread is the record of how the trade was agreed.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ForbiddenError, ValidationError
from ..events import emit_event
from ..models import OfferEventType, OfferMessage, TradeOffer
from ..permissions import is_participant
from .offers import get_offer_record

logger = logging.getLogger(__name__)


async def post_message(db: AsyncSession, offer_id: int, actor_id: int, text: str) -> TradeOffer:
    """Append a message from ``actor_id`` to the offer's thread.

    :raises NotFoundError: if the offer does not exist.
    :raises ForbiddenError: if the actor is not a participant.
    :raises ValidationError: if the text is empty once trimmed.
    """
    offer = await get_offer_record(db, offer_id)
    if not is_participant(offer, actor_id):
        raise ForbiddenError("Not authorized to post in this thread", offer_id=offer_id)

    body = (text or "").strip()
    if not body:
        raise ValidationError("Message text is required", offer_id=offer_id)

    message = OfferMessage(sender_id=actor_id, text=body)
    offer.messages.append(message)
    await db.flush()
    await emit_event(
        db,
        OfferEventType.message_posted,
        actor_id,
        offer.id,
        payload={"message_id": message.id},
    )
    logger.debug("User %s posted message %s on offer %s", actor_id, message.id, offer.id)
    return offer
