"""
Authorization predicates.

Pure functions deciding whether an actor may view or act on a listing or
an offer. They never touch the database; services load the record, raise
``NotFoundError`` if it is missing and only then consult these checks, so
a missing record always wins over a forbidden one.
"""
from __future__ import annotations

from .models import Listing, TradeOffer


def is_owner(listing: Listing, actor_id: int) -> bool:
    """The actor created the listing."""
    return listing.user_id == actor_id


def is_participant(offer: TradeOffer, actor_id: int) -> bool:
    """The actor proposed the offer or owns the listing it targets."""
    return actor_id in (offer.from_user_id, offer.to_user_id)


def is_offer_owner(offer: TradeOffer, actor_id: int) -> bool:
    """The actor is the listing owner who received the offer."""
    return offer.to_user_id == actor_id


def is_proposer(offer: TradeOffer, actor_id: int) -> bool:
    return offer.from_user_id == actor_id
