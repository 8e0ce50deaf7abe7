"""
Trade offer service and lifecycle engine.

Offers are proposed by one user on another user's listing, optionally
bundling listings the proposer owns. The listing owner then drives the
offer through its lifecycle::

    pending ──accept──▶ accepted ──mark completed──▶ completed
       │                   │
       └──decline──▶ declined ◀──decline / mark available

``mark`` may be called from any state and also re-opens a declined
offer (``mark pending``). Every transition cascades to the status of
the target listing and of the offered listings:

* accept: listings become pending, every other pending offer on the
  same listing is declined in one sweep.
* mark completed: listings become traded.
* mark pending: listings become pending.
* mark available: listings become available again, offer is declined.

Status changes are compare-and-set updates on the offer row, so two
requests racing on the same offer cannot both win. Accept additionally
locks the target listing row to serialize competing accepts on one
listing. All writes of one call share the request's session and are
committed or rolled back together.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Collection, Iterable, List, Optional, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..events import emit_event, emit_events
from ..models import (
    Listing,
    ListingStatus,
    MarkOutcome,
    OfferEvent,
    OfferEventType,
    OfferMessage,
    OfferStatus,
    TradeOffer,
)
from ..permissions import is_offer_owner, is_owner, is_participant, is_proposer
from ..schemas import ListingSummary, OfferDetail, OfferOut
from . import listings as listings_service

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (OfferStatus.declined, OfferStatus.completed)

MARK_LISTING_STATUS = {
    MarkOutcome.completed: ListingStatus.traded,
    MarkOutcome.pending: ListingStatus.pending,
    MarkOutcome.available: ListingStatus.available,
}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_offer_record(db: AsyncSession, offer_id: int) -> TradeOffer:
    """Return the offer or raise ``NotFoundError``. No access check."""
    offer = await db.get(TradeOffer, offer_id)
    if offer is None:
        raise NotFoundError("Offer not found", offer_id=offer_id)
    return offer


async def get_offer(db: AsyncSession, offer_id: int, actor_id: int) -> TradeOffer:
    """Return an offer visible to ``actor_id`` (a participant)."""
    offer = await get_offer_record(db, offer_id)
    if not is_participant(offer, actor_id):
        raise ForbiddenError("Not authorized to view this offer", offer_id=offer_id)
    return offer


async def get_offer_detail(db: AsyncSession, offer_id: int, actor_id: int) -> OfferDetail:
    """Offer view with the target and offered listings resolved.

    References to listings that no longer exist are left out.
    """
    offer = await get_offer(db, offer_id, actor_id)
    resolved = await listings_service.get_listings_by_ids(db, [offer.listing_id, *offer.offered_items])
    by_id = {listing.id: listing for listing in resolved}
    target = by_id.get(offer.listing_id)
    return OfferDetail(
        **OfferOut.model_validate(offer).model_dump(),
        listing=ListingSummary.model_validate(target) if target is not None else None,
        offered_listings=[
            ListingSummary.model_validate(by_id[item_id]) for item_id in offer.offered_items if item_id in by_id
        ],
    )


async def list_offers_for_listing(db: AsyncSession, listing_id: int, actor_id: int) -> List[TradeOffer]:
    """All offers on a listing, newest first. Listing owner only."""
    listing = await listings_service.get_listing(db, listing_id)
    if not is_owner(listing, actor_id):
        raise ForbiddenError("Not authorized to view offers for this listing", listing_id=listing_id)
    stmt = (
        select(TradeOffer)
        .where(TradeOffer.listing_id == listing.id)
        .order_by(TradeOffer.created_at.desc(), TradeOffer.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def list_sent_offers(db: AsyncSession, actor_id: int, listing_id: Optional[int] = None) -> List[TradeOffer]:
    """Offers the actor proposed, newest first, optionally for one listing."""
    stmt = select(TradeOffer).where(TradeOffer.from_user_id == actor_id)
    if listing_id is not None:
        stmt = stmt.where(TradeOffer.listing_id == listing_id)
    stmt = stmt.order_by(TradeOffer.created_at.desc(), TradeOffer.id.desc())
    return list((await db.execute(stmt)).scalars().all())


async def list_received_offers(db: AsyncSession, actor_id: int) -> List[TradeOffer]:
    """Offers made on the actor's listings, newest first."""
    stmt = (
        select(TradeOffer)
        .where(TradeOffer.to_user_id == actor_id)
        .order_by(TradeOffer.created_at.desc(), TradeOffer.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def list_offer_events(db: AsyncSession, offer_id: int, actor_id: int) -> List[OfferEvent]:
    """Audit trail of an offer, oldest first. Participants only."""
    offer = await get_offer(db, offer_id, actor_id)
    stmt = select(OfferEvent).where(OfferEvent.offer_id == offer.id).order_by(OfferEvent.id)
    return list((await db.execute(stmt)).scalars().all())


# ---------------------------------------------------------------------------
# Creation and modification
# ---------------------------------------------------------------------------


async def filter_offered_items(
    db: AsyncSession,
    proposer_id: int,
    candidate_ids: Iterable[int],
) -> Tuple[List[int], List[int]]:
    """Split candidate item ids into (kept, dropped).

    An item is kept when the proposer owns it and it is currently
    available. Order is preserved and duplicates collapse onto their
    first occurrence.
    """
    ids = list(dict.fromkeys(i for i in candidate_ids if isinstance(i, int) and not isinstance(i, bool)))
    if not ids:
        return [], []
    stmt = select(Listing.id).where(
        Listing.id.in_(ids),
        Listing.user_id == proposer_id,
        Listing.status == ListingStatus.available,
    )
    valid = set((await db.execute(stmt)).scalars().all())
    kept = [item_id for item_id in ids if item_id in valid]
    dropped = [item_id for item_id in ids if item_id not in valid]
    if dropped:
        logger.warning("Dropped offered items %s for user %s: not owned or not available", dropped, proposer_id)
    return kept, dropped


async def create_offer(
    db: AsyncSession,
    proposer_id: int,
    listing_id: int,
    candidate_item_ids: Iterable[int] = (),
    message: Optional[str] = None,
) -> Tuple[TradeOffer, List[int]]:
    """Propose a trade on someone else's listing.

    The recipient is the listing's owner at this instant. Offered items
    that fail the ownership/availability filter are skipped and returned
    as the second element of the result. A non-empty ``message`` opens
    the negotiation thread.
    """
    listing = await listings_service.get_listing(db, listing_id)
    if is_owner(listing, proposer_id):
        raise ValidationError("You cannot make an offer on your own listing", listing_id=listing_id)

    kept, dropped = await filter_offered_items(db, proposer_id, candidate_item_ids)
    text = (message or "").strip()
    offer = TradeOffer(
        listing_id=listing.id,
        from_user_id=proposer_id,
        to_user_id=listing.user_id,
        offered_items=kept,
        message=text or None,
        messages=[OfferMessage(sender_id=proposer_id, text=text)] if text else [],
        status=OfferStatus.pending,
    )
    db.add(offer)
    await db.flush()
    await emit_event(
        db,
        OfferEventType.offer_created,
        proposer_id,
        offer.id,
        payload={"listing_id": listing.id, "offered_items": kept, "dropped_items": dropped},
    )
    logger.info("Offer %s created by user %s on listing %s", offer.id, proposer_id, listing.id)
    return offer, dropped


async def update_offered_items(
    db: AsyncSession,
    offer_id: int,
    actor_id: int,
    candidate_item_ids: Iterable[int],
) -> Tuple[TradeOffer, List[int]]:
    """Replace the offered items of a pending offer. Proposer only."""
    offer = await get_offer_record(db, offer_id)
    if not is_proposer(offer, actor_id):
        raise ForbiddenError("Only proposer can update offered items", offer_id=offer_id)
    if offer.status != OfferStatus.pending:
        raise ConflictError(
            "Cannot update after offer is accepted or closed", offer_id=offer_id, status=offer.status.value
        )

    kept, dropped = await filter_offered_items(db, actor_id, candidate_item_ids)
    result = await db.execute(
        update(TradeOffer)
        .where(TradeOffer.id == offer.id, TradeOffer.status == OfferStatus.pending)
        .values(offered_items=kept, updated_at=datetime.utcnow())
    )
    if result.rowcount != 1:
        await db.refresh(offer, attribute_names=["status", "offered_items", "updated_at"])
        raise ConflictError(
            "Cannot update after offer is accepted or closed", offer_id=offer_id, status=offer.status.value
        )
    await emit_event(
        db,
        OfferEventType.offered_items_updated,
        actor_id,
        offer.id,
        payload={"offered_items": kept, "dropped_items": dropped},
    )
    return offer, dropped


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def _get_owned_offer(db: AsyncSession, offer_id: int, actor_id: int, action: str) -> TradeOffer:
    offer = await get_offer_record(db, offer_id)
    if not is_offer_owner(offer, actor_id):
        raise ForbiddenError(f"Only listing owner can {action}", offer_id=offer_id)
    return offer


async def _compare_and_set(
    db: AsyncSession,
    offer: TradeOffer,
    expected: Collection[OfferStatus],
    new_status: OfferStatus,
) -> None:
    """Move ``offer`` to ``new_status`` if its stored status is in ``expected``.

    :raises ConflictError: when another request changed the status first.
    """
    result = await db.execute(
        update(TradeOffer)
        .where(TradeOffer.id == offer.id, TradeOffer.status.in_(list(expected)))
        .values(status=new_status, updated_at=datetime.utcnow())
    )
    if result.rowcount != 1:
        await db.refresh(offer, attribute_names=["status", "updated_at"])
        raise ConflictError(f"Offer is already {offer.status.value}", offer_id=offer.id, status=offer.status.value)


def _involved_listing_ids(offer: TradeOffer) -> List[int]:
    return [offer.listing_id, *offer.offered_items]


async def accept_offer(db: AsyncSession, offer_id: int, actor_id: int) -> TradeOffer:
    """Accept a pending offer on the actor's listing.

    The target listing and the offered listings become pending and every
    other pending offer on the same listing is declined, so at most one
    offer per listing is ever accepted.
    """
    offer = await _get_owned_offer(db, offer_id, actor_id, "accept the offer")
    if offer.status != OfferStatus.pending:
        raise ConflictError(f"Offer is already {offer.status.value}", offer_id=offer_id, status=offer.status.value)

    locked = await db.execute(select(Listing.id).where(Listing.id == offer.listing_id).with_for_update())
    if locked.scalar_one_or_none() is None:
        raise NotFoundError("Listing not found", listing_id=offer.listing_id)

    competing = await db.execute(
        select(TradeOffer.id)
        .where(
            TradeOffer.listing_id == offer.listing_id,
            TradeOffer.id != offer.id,
            TradeOffer.status == OfferStatus.accepted,
        )
        .limit(1)
    )
    accepted_id = competing.scalar_one_or_none()
    if accepted_id is not None:
        raise ConflictError(
            "Listing already has an accepted offer", offer_id=offer_id, accepted_offer_id=accepted_id
        )

    await _compare_and_set(db, offer, [OfferStatus.pending], OfferStatus.accepted)
    await listings_service.set_status(db, _involved_listing_ids(offer), ListingStatus.pending)
    declined = await _decline_competing_offers(db, offer, actor_id)
    await emit_event(
        db,
        OfferEventType.offer_accepted,
        actor_id,
        offer.id,
        payload={"auto_declined": declined},
    )
    logger.info("Offer %s accepted on listing %s, auto-declined %s", offer.id, offer.listing_id, declined)
    return offer


async def _decline_competing_offers(db: AsyncSession, offer: TradeOffer, actor_id: int) -> List[int]:
    """Decline every other pending offer on the accepted offer's listing."""
    sibling_ids = list(
        (
            await db.execute(
                select(TradeOffer.id).where(
                    TradeOffer.listing_id == offer.listing_id,
                    TradeOffer.id != offer.id,
                    TradeOffer.status == OfferStatus.pending,
                )
            )
        ).scalars().all()
    )
    if not sibling_ids:
        return []
    await db.execute(
        update(TradeOffer)
        .where(TradeOffer.id.in_(sibling_ids), TradeOffer.status == OfferStatus.pending)
        .values(status=OfferStatus.declined, updated_at=datetime.utcnow())
    )
    await emit_events(
        db,
        OfferEventType.offer_auto_declined,
        actor_id,
        sibling_ids,
        payload={"accepted_offer_id": offer.id},
    )
    return sibling_ids


async def decline_offer(db: AsyncSession, offer_id: int, actor_id: int) -> TradeOffer:
    """Decline a pending or accepted offer.

    Listing statuses are not touched, even when the offer had been
    accepted and its listings are pending.
    """
    offer = await _get_owned_offer(db, offer_id, actor_id, "decline the offer")
    if offer.status in CLOSED_STATUSES:
        raise ConflictError(f"Offer is already {offer.status.value}", offer_id=offer_id, status=offer.status.value)

    previous = offer.status
    await _compare_and_set(db, offer, [OfferStatus.pending, OfferStatus.accepted], OfferStatus.declined)
    if previous == OfferStatus.accepted:
        logger.warning(
            "Offer %s declined after acceptance; listings %s keep their pending status",
            offer.id,
            _involved_listing_ids(offer),
        )
    await emit_event(
        db,
        OfferEventType.offer_declined,
        actor_id,
        offer.id,
        payload={"previous_status": previous.value},
    )
    return offer


def parse_mark_outcome(value: Union[str, MarkOutcome, None]) -> MarkOutcome:
    if isinstance(value, MarkOutcome):
        return value
    try:
        return MarkOutcome((value or "").strip())
    except ValueError as exc:
        raise ValidationError("Invalid status", status=value) from exc


async def mark_offer(
    db: AsyncSession,
    offer_id: int,
    actor_id: int,
    outcome: Union[str, MarkOutcome],
) -> TradeOffer:
    """Record the trade outcome for an offer.

    ``completed`` marks the listings traded and completes the offer.
    ``pending`` puts the listings back on hold and re-opens a declined
    offer; other offer statuses are kept. ``available`` releases the
    listings and declines the offer.
    """
    offer = await _get_owned_offer(db, offer_id, actor_id, "mark trade outcome")
    target = parse_mark_outcome(outcome)

    previous = offer.status
    if target is MarkOutcome.completed:
        new_status = OfferStatus.completed
    elif target is MarkOutcome.available:
        new_status = OfferStatus.declined
    else:
        new_status = OfferStatus.pending if previous == OfferStatus.declined else previous

    if previous == OfferStatus.pending and target is not MarkOutcome.pending:
        logger.warning("Offer %s marked %s without being accepted first", offer.id, target.value)

    await _compare_and_set(db, offer, [previous], new_status)
    await listings_service.set_status(db, _involved_listing_ids(offer), MARK_LISTING_STATUS[target])
    await emit_event(
        db,
        OfferEventType.offer_marked,
        actor_id,
        offer.id,
        payload={"outcome": target.value, "previous_status": previous.value, "status": new_status.value},
    )
    logger.info("Offer %s marked %s (%s -> %s)", offer.id, target.value, previous.value, new_status.value)
    return offer
