"""
Offer event logging utilities.

Events are append-only records describing what happened to a trade
offer: creation, edits to the offered items, messages, and every status
transition including the automatic declines triggered when a competing
offer is accepted. They are written through the caller's session so an
event is committed exactly when the change it describes is.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .models import OfferEvent, OfferEventType


async def emit_event(
    session: AsyncSession,
    event_type: OfferEventType,
    actor_id: int,
    offer_id: int,
    payload: Optional[dict[str, Any]] = None,
) -> OfferEvent:
    """Persist an event record for one offer.

    :param session: SQLAlchemy async session to use for DB operations.
    :param event_type: The type of the event being emitted.
    :param actor_id: Identifier of the user whose action caused the event.
    :param offer_id: Identifier of the offer the event belongs to.
    :param payload: JSON-serialisable dictionary with event details.
    :return: The created OfferEvent instance.
    """
    event = OfferEvent(
        offer_id=offer_id,
        actor_id=actor_id,
        event_type=event_type,
        payload=payload or {},
    )
    session.add(event)
    # Let the caller handle commit/rollback
    return event


async def emit_events(
    session: AsyncSession,
    event_type: OfferEventType,
    actor_id: int,
    offer_ids: Iterable[int],
    payload: Optional[dict[str, Any]] = None,
) -> list[OfferEvent]:
    """Persist the same event for several offers."""
    return [
        await emit_event(session, event_type, actor_id, offer_id, payload=dict(payload or {}))
        for offer_id in offer_ids
    ]
