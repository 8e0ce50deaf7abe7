"""
Listing store.

Create, read, update, search and delete listings, plus the bulk status
setter the offer lifecycle uses to move listings between available,
pending and traded. Owner edits go through an explicit allow-list of
fields; everything else a caller sends is ignored.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Union

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..images import dump_images
from ..models import Listing, ListingStatus, OfferStatus, TradeOffer
from ..permissions import is_owner
from ..schemas import ListingCreate

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "category", "condition", "location", "status", "images")
REQUIRED_FIELDS = ("title", "description", "category")
TEXT_FIELDS = ("title", "description", "category", "condition", "location")


def _trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _coerce_status(value: Any) -> ListingStatus:
    if isinstance(value, ListingStatus):
        return value
    try:
        return ListingStatus(_trim(value))
    except ValueError as exc:
        raise ValidationError(f"Invalid listing status: {value!r}", status=value) from exc


async def get_listing(db: AsyncSession, listing_id: int) -> Listing:
    """Return the listing or raise ``NotFoundError``."""
    listing = await db.get(Listing, listing_id)
    if listing is None:
        raise NotFoundError("Listing not found", listing_id=listing_id)
    return listing


async def _get_owned_listing(db: AsyncSession, listing_id: int, actor_id: int, action: str) -> Listing:
    listing = await get_listing(db, listing_id)
    if not is_owner(listing, actor_id):
        raise ForbiddenError(f"Not authorized to {action} this listing", listing_id=listing_id)
    return listing


async def create_listing(db: AsyncSession, owner_id: int, req: ListingCreate) -> Listing:
    """Create a listing owned by ``owner_id``.

    Title, description and category are trimmed and must not be empty.
    Status defaults to available.
    """
    required = {field: _trim(getattr(req, field)) or "" for field in REQUIRED_FIELDS}
    if not all(required.values()):
        raise ValidationError(
            "Title, description, and category are required",
            missing=[field for field, value in required.items() if not value],
        )
    listing = Listing(
        user_id=owner_id,
        condition=_trim(req.condition) or None,
        images=dump_images(req.images),
        location=_trim(req.location) or None,
        status=req.status or ListingStatus.available,
        **required,
    )
    db.add(listing)
    await db.flush()
    logger.info("Listing %s created by user %s", listing.id, owner_id)
    return listing


async def _has_accepted_offer(db: AsyncSession, listing_id: int) -> bool:
    stmt = (
        select(TradeOffer.id)
        .where(TradeOffer.listing_id == listing_id, TradeOffer.status == OfferStatus.accepted)
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none() is not None


async def update_listing(
    db: AsyncSession,
    listing_id: int,
    actor_id: int,
    changes: Mapping[str, Any],
) -> Listing:
    """Apply a partial update from the listing owner.

    Only fields in ``UPDATABLE_FIELDS`` are applied, text fields are
    trimmed and required fields cannot be blanked. The owner may not
    change the status while an accepted offer on the listing is
    outstanding; the offer lifecycle owns it at that point.
    """
    listing = await _get_owned_listing(db, listing_id, actor_id, "update")
    for key in UPDATABLE_FIELDS:
        if key not in changes:
            continue
        value = _trim(changes[key])
        if key in REQUIRED_FIELDS:
            if not value:
                raise ValidationError(f"{key.capitalize()} cannot be empty", field=key)
            setattr(listing, key, value)
        elif key == "images":
            listing.images = dump_images(value if isinstance(value, list) else [])
        elif key == "status":
            new_status = _coerce_status(value)
            if new_status != listing.status and await _has_accepted_offer(db, listing.id):
                raise ConflictError(
                    "Listing status is managed by its accepted offer",
                    listing_id=listing.id,
                    status=listing.status.value,
                )
            listing.status = new_status
        else:
            setattr(listing, key, value or None)
    await db.flush()
    return listing


async def delete_listing(db: AsyncSession, listing_id: int, actor_id: int) -> None:
    """Delete a listing on behalf of its owner.

    Offers that reference the listing are left alone; offer reads treat
    the vanished listing as absent.
    """
    listing = await _get_owned_listing(db, listing_id, actor_id, "delete")
    await db.delete(listing)
    await db.flush()
    logger.info("Listing %s deleted by user %s", listing_id, actor_id)


async def search_listings(
    db: AsyncSession,
    text: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[ListingStatus] = None,
    owner_id: Optional[int] = None,
    sort: str = "newest",
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Listing]:
    """Return one page of listings matching the filters.

    ``text`` matches case-insensitively anywhere in the title or the
    description. Results are ordered by creation time, newest first
    unless ``sort`` is ``"oldest"``.
    """
    settings = get_settings()
    page_size = min(limit or settings.default_page_size, settings.max_page_size)

    stmt = select(Listing)
    if text and text.strip():
        needle = text.strip()
        stmt = stmt.where(
            or_(
                Listing.title.icontains(needle, autoescape=True),
                Listing.description.icontains(needle, autoescape=True),
            )
        )
    if category:
        stmt = stmt.where(Listing.category == category)
    if status is not None:
        stmt = stmt.where(Listing.status == _coerce_status(status))
    if owner_id is not None:
        stmt = stmt.where(Listing.user_id == owner_id)

    if sort == "oldest":
        stmt = stmt.order_by(Listing.created_at.asc(), Listing.id.asc())
    else:
        stmt = stmt.order_by(Listing.created_at.desc(), Listing.id.desc())
    stmt = stmt.offset(max(offset, 0)).limit(page_size)
    return list((await db.execute(stmt)).scalars().all())


async def list_user_listings(db: AsyncSession, owner_id: int, available_only: bool = False) -> List[Listing]:
    """All listings of one owner, newest first."""
    stmt = select(Listing).where(Listing.user_id == owner_id)
    if available_only:
        stmt = stmt.where(Listing.status == ListingStatus.available)
    stmt = stmt.order_by(Listing.created_at.desc(), Listing.id.desc())
    return list((await db.execute(stmt)).scalars().all())


async def get_listings_by_ids(db: AsyncSession, listing_ids: Iterable[int]) -> List[Listing]:
    """Resolve listing references in the given order, skipping missing ones."""
    ids = list(listing_ids)
    if not ids:
        return []
    rows = (await db.execute(select(Listing).where(Listing.id.in_(ids)))).scalars().all()
    by_id = {listing.id: listing for listing in rows}
    return [by_id[listing_id] for listing_id in ids if listing_id in by_id]


async def set_status(
    db: AsyncSession,
    listing_ids: Union[int, Iterable[int]],
    status: ListingStatus,
) -> int:
    """Set the status of one or several listings.

    No ownership check is made: callers have authorised the change at the
    offer level. Ids that no longer exist are ignored and setting a status
    a listing already has is a no-op. Returns the number of rows matched.
    """
    ids = [listing_ids] if isinstance(listing_ids, int) else list(dict.fromkeys(listing_ids))
    if not ids:
        return 0
    result = await db.execute(
        update(Listing).where(Listing.id.in_(ids)).values(status=status)
    )
    return result.rowcount or 0
