"""
Pydantic models for API requests and responses.

These models define the data contracts for the HTTP API exposed by
FastAPI. They reuse the enumerations from the ORM models so that the
status vocabulary is identical across layers. Request models only shape
the payload; trimming and emptiness rules are enforced by the services
so that they hold no matter who calls them.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .images import ListingImage, normalize_images
from .models import ListingStatus, OfferEventType, OfferStatus


class ListingCreate(BaseModel):
    """Request payload for creating a listing."""

    title: str = Field("", description="Short name of the item.")
    description: str = Field("", description="Free-text description of the item.")
    category: str = Field("", description="Category used for browsing.")
    condition: Optional[str] = Field(None, description="Condition of the item, e.g. 'like new'.")
    images: List[Union[str, dict]] = Field(
        default_factory=list,
        description="Image URLs or upload records ({url, filename, mimetype, size, uploadedAt}).",
    )
    location: Optional[str] = Field(None, description="Free-text location of the item.")
    status: Optional[ListingStatus] = Field(None, description="Initial status, defaults to available.")


class ListingUpdate(BaseModel):
    """Partial update of a listing. Unknown fields are ignored."""

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    images: Optional[List[Union[str, dict]]] = None
    location: Optional[str] = None
    status: Optional[ListingStatus] = None


class ListingOut(BaseModel):
    """Response model for a listing."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    description: str
    category: str
    condition: Optional[str] = None
    images: List[ListingImage] = []
    image_urls: List[str] = []
    location: Optional[str] = None
    status: ListingStatus
    created_at: datetime

    @field_validator("images", mode="before")
    @classmethod
    def _normalize_images(cls, value: Any) -> list:
        return [image.model_dump() for image in normalize_images(value)]


class ListingSummary(BaseModel):
    """Compact listing view embedded in offer details."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    description: str
    status: ListingStatus
    image_urls: List[str] = []


class OfferCreate(BaseModel):
    """Request payload for proposing a trade offer."""

    listing_id: int = Field(..., description="Listing the offer targets.")
    offered_items: List[int] = Field(default_factory=list, description="Proposer's listings bundled into the offer.")
    message: str = Field("", description="Optional opening message of the negotiation thread.")


class OfferedItemsUpdate(BaseModel):
    """Replace the listings bundled into a pending offer."""

    offered_items: List[int] = Field(default_factory=list)


class MessageCreate(BaseModel):
    """Request payload for posting to an offer thread."""

    text: str = Field("", description="Message text.")


class MarkRequest(BaseModel):
    """Trade outcome recorded by the listing owner."""

    status: str = Field("", description="One of 'completed', 'pending' or 'available'.")


class OfferMessageOut(BaseModel):
    """Response model for a thread message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    text: str
    created_at: datetime


class OfferOut(BaseModel):
    """Response model for a trade offer with its thread."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    listing_id: int
    from_user_id: int
    to_user_id: int
    offered_items: List[int] = []
    message: Optional[str] = None
    messages: List[OfferMessageOut] = []
    status: OfferStatus
    created_at: datetime
    updated_at: datetime


class OfferResult(BaseModel):
    """An offer together with the candidate items that were not attached."""

    offer: OfferOut
    dropped_items: List[int] = Field(
        default_factory=list,
        description="Requested items skipped because the proposer does not own them or they are not available.",
    )


class OfferDetail(OfferOut):
    """Offer view with the referenced listings resolved.

    Listings deleted since the offer was made are omitted.
    """

    listing: Optional[ListingSummary] = None
    offered_listings: List[ListingSummary] = []


class OfferEventOut(BaseModel):
    """Response model for an offer audit event."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    offer_id: int
    actor_id: int
    event_type: OfferEventType
    payload: dict
    created_at: datetime


class UserOut(BaseModel):
    """Response model for the current user."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str] = None
    created_at: datetime


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
    code: str
    data: dict = {}
