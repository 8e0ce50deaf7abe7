"""
Database models for the Exchanger marketplace.

This module defines the ORM classes for users, listings, trade offers,
the messages embedded in an offer's negotiation thread and the offer
event log. The models are designed with SQLAlchemy's asynchronous
support in mind: collections that are read on every offer view are
loaded eagerly with ``selectin`` so that no lazy load is ever attempted
outside of an awaited statement.

Offers reference listings by id without a foreign key constraint.
Listings can disappear through unrelated flows (owner deletes the
listing, account deletion) and offer reads must tolerate that.

For tests and development the ``init_db_schema`` helper creates the
tables on the fly.
"""
from __future__ import annotations

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .images import image_urls, normalize_images


class ListingStatus(enum.Enum):
    """Availability of a listed item."""

    available = "available"
    pending = "pending"
    traded = "traded"


class OfferStatus(enum.Enum):
    """Lifecycle state of a trade offer."""

    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    completed = "completed"


class MarkOutcome(enum.Enum):
    """Outcomes the listing owner can record with the mark operation."""

    completed = "completed"
    pending = "pending"
    available = "available"


class OfferEventType(enum.Enum):
    """Events recorded in an offer's audit trail."""

    offer_created = "OFFER_CREATED"
    offered_items_updated = "OFFERED_ITEMS_UPDATED"
    message_posted = "MESSAGE_POSTED"
    offer_accepted = "OFFER_ACCEPTED"
    offer_declined = "OFFER_DECLINED"
    offer_auto_declined = "OFFER_AUTO_DECLINED"
    offer_marked = "OFFER_MARKED"


class User(Base):
    """Represents a marketplace member."""

    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(length=100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Listing(Base):
    """An item a user offers for trade."""

    __tablename__ = "listings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(length=200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(length=100), nullable=False, index=True)
    condition: Mapped[Optional[str]] = mapped_column(String(length=100), nullable=True)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    location: Mapped[Optional[str]] = mapped_column(String(length=200), nullable=True)
    status: Mapped[ListingStatus] = mapped_column(
        Enum(ListingStatus), nullable=False, default=ListingStatus.available, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)

    @property
    def image_list(self) -> list:
        """Stored images as tagged variants, legacy entries included."""
        return normalize_images(self.images)

    @property
    def image_urls(self) -> List[str]:
        return image_urls(self.images)


class TradeOffer(Base):
    """A proposal to exchange listings, with its negotiation thread."""

    __tablename__ = "trade_offers"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    from_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    to_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    offered_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    # First message of the thread, kept for clients that predate ``messages``.
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[OfferStatus] = mapped_column(
        Enum(OfferStatus), nullable=False, default=OfferStatus.pending, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    messages: Mapped[list["OfferMessage"]] = relationship(
        "OfferMessage",
        back_populates="offer",
        cascade="all, delete-orphan",
        order_by="OfferMessage.id",
        lazy="selectin",
    )


class OfferMessage(Base):
    """A single message in an offer's negotiation thread."""

    __tablename__ = "offer_messages"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    offer_id: Mapped[int] = mapped_column(
        ForeignKey("trade_offers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[int] = mapped_column(Integer, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    offer: Mapped[TradeOffer] = relationship("TradeOffer", back_populates="messages")


class OfferEvent(Base):
    """Append-only audit record of something that happened to an offer."""

    __tablename__ = "offer_events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    offer_id: Mapped[int] = mapped_column(
        ForeignKey("trade_offers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    event_type: Mapped[OfferEventType] = mapped_column(Enum(OfferEventType), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
