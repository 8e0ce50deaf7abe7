"""
Tests for trade offers and the offer lifecycle engine.

The scenario tests follow one listing through a full negotiation: an
offer is made, accepted (competing offers are declined), and completed.
"""
import pytest
from sqlalchemy import func, select

from exchanger.core.db import get_db_session
from exchanger.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from exchanger.core.models import ListingStatus, OfferEventType, OfferStatus, TradeOffer
from exchanger.core.services import listings as listings_service
from exchanger.core.services import offers as offers_service

from conftest import OTHER, OWNER, PROPOSER, make_listing


async def _statuses(db, *listings):
    db.expunge_all()
    reloaded = await listings_service.get_listings_by_ids(db, [listing.id for listing in listings])
    return [listing.status for listing in reloaded]


async def _offer_status(db, offer_id: int) -> OfferStatus:
    return (await db.execute(select(TradeOffer.status).where(TradeOffer.id == offer_id))).scalar_one()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_offer_is_created_pending_for_the_listing_owner(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, dropped = await offers_service.create_offer(db, PROPOSER, listing.id, [])

    assert offer.status == OfferStatus.pending
    assert offer.from_user_id == PROPOSER
    assert offer.to_user_id == OWNER
    assert offer.offered_items == []
    assert offer.messages == []
    assert dropped == []


@pytest.mark.asyncio
async def test_opening_message_starts_the_thread(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [], "  Would you swap?  ")

    assert offer.message == "Would you swap?"
    assert [(m.sender_id, m.text) for m in offer.messages] == [(PROPOSER, "Would you swap?")]


@pytest.mark.asyncio
async def test_blank_opening_message_is_not_stored(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [], "   ")
    assert offer.message is None
    assert offer.messages == []


@pytest.mark.asyncio
async def test_owner_cannot_offer_on_own_listing(db) -> None:
    listing = await make_listing(db, OWNER)
    with pytest.raises(ValidationError):
        await offers_service.create_offer(db, OWNER, listing.id, [])


@pytest.mark.asyncio
async def test_offer_on_missing_listing_is_not_found(db) -> None:
    with pytest.raises(NotFoundError):
        await offers_service.create_offer(db, PROPOSER, 404, [])


@pytest.mark.asyncio
async def test_offered_items_are_filtered_to_available_items_of_the_proposer(db) -> None:
    listing = await make_listing(db, OWNER)
    mine = await make_listing(db, PROPOSER, title="Tent")
    mine_too = await make_listing(db, PROPOSER, title="Stove")
    mine_pending = await make_listing(db, PROPOSER, title="Kayak")
    theirs = await make_listing(db, OTHER, title="Lamp")
    await listings_service.set_status(db, mine_pending.id, ListingStatus.pending)

    offer, dropped = await offers_service.create_offer(
        db,
        PROPOSER,
        listing.id,
        [mine_too.id, theirs.id, mine.id, mine_pending.id, mine_too.id, 9999],
    )

    assert offer.offered_items == [mine_too.id, mine.id]
    assert dropped == [theirs.id, mine_pending.id, 9999]


@pytest.mark.asyncio
async def test_update_offered_items_replaces_the_list(db) -> None:
    listing = await make_listing(db, OWNER)
    tent = await make_listing(db, PROPOSER, title="Tent")
    stove = await make_listing(db, PROPOSER, title="Stove")
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [tent.id])

    updated, dropped = await offers_service.update_offered_items(db, offer.id, PROPOSER, [stove.id, listing.id])

    assert updated.offered_items == [stove.id]
    assert dropped == [listing.id]


@pytest.mark.asyncio
async def test_only_the_proposer_updates_offered_items(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    with pytest.raises(ForbiddenError):
        await offers_service.update_offered_items(db, offer.id, OWNER, [])


@pytest.mark.asyncio
async def test_offered_items_are_frozen_once_accepted(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    await offers_service.accept_offer(db, offer.id, OWNER)

    with pytest.raises(ConflictError) as exc:
        await offers_service.update_offered_items(db, offer.id, PROPOSER, [])
    assert exc.value.message == "Cannot update after offer is accepted or closed"


# ---------------------------------------------------------------------------
# Accept
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_accept_puts_listings_on_hold(db) -> None:
    listing = await make_listing(db, OWNER)
    tent = await make_listing(db, PROPOSER, title="Tent")
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [tent.id])

    accepted = await offers_service.accept_offer(db, offer.id, OWNER)

    assert accepted.status == OfferStatus.accepted
    assert await _statuses(db, listing, tent) == [ListingStatus.pending, ListingStatus.pending]


@pytest.mark.asyncio
async def test_accept_declines_competing_pending_offers(db) -> None:
    listing = await make_listing(db, OWNER)
    elsewhere = await make_listing(db, OWNER, title="Other item")
    first, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    second, _ = await offers_service.create_offer(db, OTHER, listing.id)
    third, _ = await offers_service.create_offer(db, OTHER, listing.id)
    unrelated, _ = await offers_service.create_offer(db, OTHER, elsewhere.id)
    await offers_service.decline_offer(db, third.id, OWNER)

    await offers_service.accept_offer(db, first.id, OWNER)

    assert await _offer_status(db, first.id) == OfferStatus.accepted
    assert await _offer_status(db, second.id) == OfferStatus.declined
    assert await _offer_status(db, third.id) == OfferStatus.declined
    assert await _offer_status(db, unrelated.id) == OfferStatus.pending

    events = await offers_service.list_offer_events(db, second.id, OWNER)
    assert events[-1].event_type == OfferEventType.offer_auto_declined
    assert events[-1].payload == {"accepted_offer_id": first.id}


@pytest.mark.asyncio
async def test_accept_requires_a_pending_offer(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    await offers_service.decline_offer(db, offer.id, OWNER)

    with pytest.raises(ConflictError) as exc:
        await offers_service.accept_offer(db, offer.id, OWNER)
    assert exc.value.message == "Offer is already declined"


@pytest.mark.asyncio
async def test_only_the_listing_owner_accepts(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    with pytest.raises(ForbiddenError):
        await offers_service.accept_offer(db, offer.id, PROPOSER)
    with pytest.raises(NotFoundError):
        await offers_service.accept_offer(db, 31337, PROPOSER)


@pytest.mark.asyncio
async def test_at_most_one_offer_per_listing_is_accepted(db) -> None:
    listing = await make_listing(db, OWNER)
    first, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    second, _ = await offers_service.create_offer(db, OTHER, listing.id)
    await offers_service.accept_offer(db, first.id, OWNER)

    # Re-opening the auto-declined offer does not let it be accepted alongside.
    await offers_service.mark_offer(db, second.id, OWNER, "pending")
    assert await _offer_status(db, second.id) == OfferStatus.pending
    with pytest.raises(ConflictError):
        await offers_service.accept_offer(db, second.id, OWNER)

    accepted = await db.execute(
        select(func.count())
        .select_from(TradeOffer)
        .where(TradeOffer.listing_id == listing.id, TradeOffer.status == OfferStatus.accepted)
    )
    assert accepted.scalar_one() == 1


@pytest.mark.asyncio
async def test_stale_accept_loses_the_compare_and_set(database) -> None:
    async with get_db_session() as setup:
        listing = await make_listing(setup, OWNER)
        offer, _ = await offers_service.create_offer(setup, PROPOSER, listing.id)

    async with get_db_session() as first:
        stale = await offers_service.get_offer_record(first, offer.id)
        assert stale.status == OfferStatus.pending

        async with get_db_session() as second:
            await offers_service.accept_offer(second, offer.id, OWNER)

        with pytest.raises(ConflictError) as exc:
            await offers_service.accept_offer(first, offer.id, OWNER)
        assert exc.value.data["status"] == "accepted"

    async with get_db_session() as check:
        events = await offers_service.list_offer_events(check, offer.id, OWNER)
        accepted = [event for event in events if event.event_type == OfferEventType.offer_accepted]
        assert len(accepted) == 1


# ---------------------------------------------------------------------------
# Decline
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_decline_pending_offer_leaves_listings_alone(db) -> None:
    listing = await make_listing(db, OWNER)
    tent = await make_listing(db, PROPOSER, title="Tent")
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [tent.id])

    declined = await offers_service.decline_offer(db, offer.id, OWNER)

    assert declined.status == OfferStatus.declined
    assert await _statuses(db, listing, tent) == [ListingStatus.available, ListingStatus.available]


@pytest.mark.asyncio
async def test_decline_after_accept_keeps_listings_pending(db) -> None:
    listing = await make_listing(db, OWNER)
    tent = await make_listing(db, PROPOSER, title="Tent")
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [tent.id])
    await offers_service.accept_offer(db, offer.id, OWNER)

    await offers_service.decline_offer(db, offer.id, OWNER)

    assert await _offer_status(db, offer.id) == OfferStatus.declined
    assert await _statuses(db, listing, tent) == [ListingStatus.pending, ListingStatus.pending]


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome, closed", [("available", "declined"), ("completed", "completed")])
async def test_decline_rejects_closed_offers(db, outcome, closed) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    await offers_service.mark_offer(db, offer.id, OWNER, outcome)

    with pytest.raises(ConflictError) as exc:
        await offers_service.decline_offer(db, offer.id, OWNER)
    assert exc.value.message == f"Offer is already {closed}"


@pytest.mark.asyncio
async def test_proposer_cannot_decline(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    with pytest.raises(ForbiddenError):
        await offers_service.decline_offer(db, offer.id, PROPOSER)


# ---------------------------------------------------------------------------
# Mark
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mark_completed_trades_every_listing(db) -> None:
    listing = await make_listing(db, OWNER)
    tent = await make_listing(db, PROPOSER, title="Tent")
    stove = await make_listing(db, PROPOSER, title="Stove")
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [tent.id, stove.id])
    await offers_service.accept_offer(db, offer.id, OWNER)

    marked = await offers_service.mark_offer(db, offer.id, OWNER, "completed")

    assert marked.status == OfferStatus.completed
    assert await _statuses(db, listing, tent, stove) == [ListingStatus.traded] * 3


@pytest.mark.asyncio
async def test_mark_available_releases_listings_and_declines(db) -> None:
    listing = await make_listing(db, OWNER)
    tent = await make_listing(db, PROPOSER, title="Tent")
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [tent.id])
    await offers_service.accept_offer(db, offer.id, OWNER)

    marked = await offers_service.mark_offer(db, offer.id, OWNER, "available")

    assert marked.status == OfferStatus.declined
    assert await _statuses(db, listing, tent) == [ListingStatus.available, ListingStatus.available]


@pytest.mark.asyncio
async def test_mark_pending_reopens_a_declined_offer(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    await offers_service.decline_offer(db, offer.id, OWNER)

    marked = await offers_service.mark_offer(db, offer.id, OWNER, "pending")

    assert marked.status == OfferStatus.pending
    assert await _statuses(db, listing) == [ListingStatus.pending]


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", ["accept", "completed", "available"])
async def test_mark_pending_keeps_accepted_and_completed_status(db, outcome) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    await offers_service.accept_offer(db, offer.id, OWNER)
    if outcome != "accept":
        await offers_service.mark_offer(db, offer.id, OWNER, outcome)
    before = await _offer_status(db, offer.id)

    await offers_service.mark_offer(db, offer.id, OWNER, "pending")

    expected = OfferStatus.pending if before == OfferStatus.declined else before
    assert await _offer_status(db, offer.id) == expected
    assert await _statuses(db, listing) == [ListingStatus.pending]


@pytest.mark.asyncio
async def test_mark_is_allowed_on_an_offer_never_accepted(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)

    marked = await offers_service.mark_offer(db, offer.id, OWNER, "completed")

    assert marked.status == OfferStatus.completed
    assert await _statuses(db, listing) == [ListingStatus.traded]


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", ["", "traded", "declined", None])
async def test_mark_rejects_unknown_outcomes(db, outcome) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    with pytest.raises(ValidationError) as exc:
        await offers_service.mark_offer(db, offer.id, OWNER, outcome)
    assert exc.value.message == "Invalid status"


@pytest.mark.asyncio
async def test_mark_checks_existence_before_authorization(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    with pytest.raises(NotFoundError):
        await offers_service.mark_offer(db, offer.id + 100, OTHER, "completed")
    with pytest.raises(ForbiddenError):
        await offers_service.mark_offer(db, offer.id, OTHER, "completed")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_offer_is_visible_to_participants_only(db) -> None:
    listing = await make_listing(db, OWNER)
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id)

    assert (await offers_service.get_offer(db, offer.id, OWNER)).id == offer.id
    assert (await offers_service.get_offer(db, offer.id, PROPOSER)).id == offer.id
    with pytest.raises(ForbiddenError):
        await offers_service.get_offer(db, offer.id, OTHER)


@pytest.mark.asyncio
async def test_offer_detail_skips_deleted_listings(db) -> None:
    listing = await make_listing(db, OWNER)
    tent = await make_listing(db, PROPOSER, title="Tent")
    stove = await make_listing(db, PROPOSER, title="Stove")
    offer, _ = await offers_service.create_offer(db, PROPOSER, listing.id, [tent.id, stove.id])
    await listings_service.delete_listing(db, tent.id, PROPOSER)

    detail = await offers_service.get_offer_detail(db, offer.id, OWNER)
    assert detail.listing is not None and detail.listing.id == listing.id
    assert [item.title for item in detail.offered_listings] == ["Stove"]

    await listings_service.delete_listing(db, listing.id, OWNER)
    detail = await offers_service.get_offer_detail(db, offer.id, PROPOSER)
    assert detail.listing is None
    assert detail.offered_items == [tent.id, stove.id]


@pytest.mark.asyncio
async def test_offer_lists_by_role(db) -> None:
    listing = await make_listing(db, OWNER)
    other_listing = await make_listing(db, OTHER)
    first, _ = await offers_service.create_offer(db, PROPOSER, listing.id)
    second, _ = await offers_service.create_offer(db, PROPOSER, other_listing.id)
    third, _ = await offers_service.create_offer(db, OTHER, listing.id)

    assert [o.id for o in await offers_service.list_sent_offers(db, PROPOSER)] == [second.id, first.id]
    assert [o.id for o in await offers_service.list_sent_offers(db, PROPOSER, listing_id=listing.id)] == [first.id]
    assert [o.id for o in await offers_service.list_received_offers(db, OWNER)] == [third.id, first.id]
    assert [o.id for o in await offers_service.list_offers_for_listing(db, listing.id, OWNER)] == [third.id, first.id]
    with pytest.raises(ForbiddenError):
        await offers_service.list_offers_for_listing(db, listing.id, PROPOSER)
