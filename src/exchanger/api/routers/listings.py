"""
Listing API router.

Public browsing and lookup endpoints plus the owner's create, edit and
delete operations. See ``exchanger.core.services.listings`` for the
rules applied to each operation.
"""
from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Path, Query

from ..dependencies import CurrentUser, DatabaseSession
from ...core.models import ListingStatus
from ...core.schemas import ListingCreate, ListingOut, ListingUpdate
from ...core.services import listings as listings_service


router = APIRouter(prefix="/listings", tags=["listings"])


@router.get("", response_model=list[ListingOut])
async def search_listings(
    db: DatabaseSession,
    q: Optional[str] = Query(None, description="Text matched against title and description."),
    category: Optional[str] = Query(None),
    status: Optional[ListingStatus] = Query(None),
    owner: Optional[int] = Query(None, description="Only listings of this user."),
    sort: Literal["newest", "oldest"] = Query("newest"),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
) -> list[ListingOut]:
    """Browse listings."""
    listings = await listings_service.search_listings(
        db,
        text=q,
        category=category,
        status=status,
        owner_id=owner,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return [ListingOut.model_validate(listing) for listing in listings]


@router.get("/mine", response_model=list[ListingOut])
async def my_listings(db: DatabaseSession, user: CurrentUser) -> list[ListingOut]:
    """List the current user's listings."""
    listings = await listings_service.list_user_listings(db, user.id)
    return [ListingOut.model_validate(listing) for listing in listings]


@router.get("/mine/available", response_model=list[ListingOut])
async def my_available_listings(db: DatabaseSession, user: CurrentUser) -> list[ListingOut]:
    """List the current user's listings that can still be offered."""
    listings = await listings_service.list_user_listings(db, user.id, available_only=True)
    return [ListingOut.model_validate(listing) for listing in listings]


@router.get("/{listing_id}", response_model=ListingOut)
async def get_listing(
    db: DatabaseSession,
    listing_id: int = Path(..., description="Identifier of the listing."),
) -> ListingOut:
    """Get one listing."""
    return ListingOut.model_validate(await listings_service.get_listing(db, listing_id))


@router.post("", response_model=ListingOut, status_code=201)
async def create_listing(
    req: ListingCreate,
    db: DatabaseSession,
    user: CurrentUser,
) -> ListingOut:
    """Create a listing owned by the current user."""
    listing = await listings_service.create_listing(db, user.id, req)
    return ListingOut.model_validate(listing)


@router.patch("/{listing_id}", response_model=ListingOut)
async def update_listing(
    req: ListingUpdate,
    db: DatabaseSession,
    user: CurrentUser,
    listing_id: int = Path(..., description="Identifier of the listing."),
) -> ListingOut:
    """Edit a listing. Only fields present in the body are changed."""
    listing = await listings_service.update_listing(
        db, listing_id, user.id, req.model_dump(exclude_unset=True)
    )
    return ListingOut.model_validate(listing)


@router.delete("/{listing_id}", status_code=204)
async def delete_listing(
    db: DatabaseSession,
    user: CurrentUser,
    listing_id: int = Path(..., description="Identifier of the listing."),
) -> None:
    """Delete a listing owned by the current user."""
    await listings_service.delete_listing(db, listing_id, user.id)
    return None
