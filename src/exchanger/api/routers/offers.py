"""
Trade offer API router.

Endpoints for proposing offers, reading offer threads, negotiating via
messages and driving the offer lifecycle (accept, decline, mark). The
acting user always comes from the ``X-User-Id`` header and is passed to
the services explicitly.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Path, Query

from ..dependencies import CurrentUser, DatabaseSession
from ...core.schemas import (
    MarkRequest,
    MessageCreate,
    OfferCreate,
    OfferDetail,
    OfferedItemsUpdate,
    OfferEventOut,
    OfferOut,
    OfferResult,
)
from ...core.services import messaging as messaging_service
from ...core.services import offers as offers_service


router = APIRouter(prefix="/offers", tags=["offers"])


@router.post("", response_model=OfferResult, status_code=201)
async def create_offer(
    req: OfferCreate,
    db: DatabaseSession,
    user: CurrentUser,
) -> OfferResult:
    """Propose a trade on another user's listing."""
    offer, dropped = await offers_service.create_offer(
        db, user.id, req.listing_id, req.offered_items, req.message
    )
    return OfferResult(offer=OfferOut.model_validate(offer), dropped_items=dropped)


@router.get("/sent", response_model=list[OfferOut])
async def list_sent_offers(
    db: DatabaseSession,
    user: CurrentUser,
    listing_id: Optional[int] = Query(None, description="Only offers on this listing."),
) -> list[OfferOut]:
    """Offers the current user made."""
    offers = await offers_service.list_sent_offers(db, user.id, listing_id=listing_id)
    return [OfferOut.model_validate(offer) for offer in offers]


@router.get("/received", response_model=list[OfferOut])
async def list_received_offers(db: DatabaseSession, user: CurrentUser) -> list[OfferOut]:
    """Offers made on the current user's listings."""
    offers = await offers_service.list_received_offers(db, user.id)
    return [OfferOut.model_validate(offer) for offer in offers]


@router.get("/listing/{listing_id}", response_model=list[OfferOut])
async def list_offers_for_listing(
    db: DatabaseSession,
    user: CurrentUser,
    listing_id: int = Path(..., description="Identifier of the listing."),
) -> list[OfferOut]:
    """All offers on one of the current user's listings."""
    offers = await offers_service.list_offers_for_listing(db, listing_id, user.id)
    return [OfferOut.model_validate(offer) for offer in offers]


@router.get("/{offer_id}", response_model=OfferDetail)
async def get_offer(
    db: DatabaseSession,
    user: CurrentUser,
    offer_id: int = Path(..., description="Identifier of the offer."),
) -> OfferDetail:
    """Get an offer thread with its listings resolved."""
    return await offers_service.get_offer_detail(db, offer_id, user.id)


@router.get("/{offer_id}/events", response_model=list[OfferEventOut])
async def list_offer_events(
    db: DatabaseSession,
    user: CurrentUser,
    offer_id: int = Path(..., description="Identifier of the offer."),
) -> list[OfferEventOut]:
    """Audit trail of the offer."""
    events = await offers_service.list_offer_events(db, offer_id, user.id)
    return [OfferEventOut.model_validate(event) for event in events]


@router.patch("/{offer_id}/offered-items", response_model=OfferResult)
async def update_offered_items(
    req: OfferedItemsUpdate,
    db: DatabaseSession,
    user: CurrentUser,
    offer_id: int = Path(..., description="Identifier of the offer."),
) -> OfferResult:
    """Replace the listings bundled into a pending offer."""
    offer, dropped = await offers_service.update_offered_items(db, offer_id, user.id, req.offered_items)
    return OfferResult(offer=OfferOut.model_validate(offer), dropped_items=dropped)


@router.post("/{offer_id}/messages", response_model=OfferOut, status_code=201)
async def post_message(
    req: MessageCreate,
    db: DatabaseSession,
    user: CurrentUser,
    offer_id: int = Path(..., description="Identifier of the offer."),
) -> OfferOut:
    """Post a message to the offer thread."""
    offer = await messaging_service.post_message(db, offer_id, user.id, req.text)
    return OfferOut.model_validate(offer)


@router.post("/{offer_id}/accept", response_model=OfferOut)
async def accept_offer(
    db: DatabaseSession,
    user: CurrentUser,
    offer_id: int = Path(..., description="Identifier of the offer."),
) -> OfferOut:
    """Accept an offer on one of the current user's listings."""
    return OfferOut.model_validate(await offers_service.accept_offer(db, offer_id, user.id))


@router.post("/{offer_id}/decline", response_model=OfferOut)
async def decline_offer(
    db: DatabaseSession,
    user: CurrentUser,
    offer_id: int = Path(..., description="Identifier of the offer."),
) -> OfferOut:
    """Decline an offer on one of the current user's listings."""
    return OfferOut.model_validate(await offers_service.decline_offer(db, offer_id, user.id))


@router.post("/{offer_id}/mark", response_model=OfferOut)
async def mark_offer(
    req: MarkRequest,
    db: DatabaseSession,
    user: CurrentUser,
    offer_id: int = Path(..., description="Identifier of the offer."),
) -> OfferOut:
    """Record the trade outcome: completed, pending or available."""
    return OfferOut.model_validate(await offers_service.mark_offer(db, offer_id, user.id, req.status))
