"""
Public event feed, event detail and unpublishing.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.models.enums import AuditAction, ModerationState, UnpublishReason
from flyerboard.models.tables import Event, Venue
from flyerboard.pipeline.date_parser import as_utc
from flyerboard.pipeline.errors import NotFound
from flyerboard.review.audit import record_audit
from flyerboard.schemas.events import (
    EventDetail,
    EventFeature,
    EventFeatureCollection,
    EventFilters,
    EventProperties,
    PointGeometry,
    VenueDetail,
)

logger = structlog.get_logger(__name__)


async def load_event(
    session: AsyncSession, event_id: uuid.UUID, include_unpublished: bool = False
) -> tuple[Event, Optional[Venue]]:
    """(event, venue). Unpublished events are NotFound unless asked for."""
    result = await session.execute(
        select(Event, Venue)
        .outerjoin(Venue, Event.venue_id == Venue.venue_id)
        .where(Event.event_id == event_id)
    )
    row = result.first()
    if row is None:
        raise NotFound(f"Event not found: {event_id}")
    event, venue = row
    if not include_unpublished and event.moderation_state != ModerationState.APPROVED.value:
        raise NotFound(f"Event not found: {event_id}")
    return event, venue


async def list_event_features(
    session: AsyncSession,
    filters: EventFilters,
    now: Optional[datetime] = None,
) -> EventFeatureCollection:
    """Approved events as GeoJSON; upcoming only unless include_past or start_date is set."""
    now = now or datetime.now(timezone.utc)

    query = (
        select(Event, Venue)
        .outerjoin(Venue, Event.venue_id == Venue.venue_id)
        .where(Event.moderation_state == ModerationState.APPROVED.value)
    )

    if filters.start_date is not None:
        query = query.where(Event.start_ts >= as_utc(filters.start_date))
    elif not filters.include_past:
        query = query.where(Event.start_ts >= as_utc(now))

    if filters.end_date is not None:
        query = query.where(Event.start_ts <= as_utc(filters.end_date))

    if filters.keyword:
        pattern = f"%{filters.keyword.strip().lower()}%"
        query = query.where(
            or_(
                func.lower(Event.title).like(pattern),
                func.lower(Event.description).like(pattern),
            )
        )

    if filters.bbox is not None:
        box = filters.bbox
        query = query.where(
            Venue.latitude.between(box.south, box.north),
            Venue.longitude.between(box.west, box.east),
        )

    query = query.order_by(Event.start_ts).offset(filters.offset).limit(filters.limit)
    result = await session.execute(query)

    features = [_to_feature(event, venue) for event, venue in result.all()]
    return EventFeatureCollection(features=features)


def _to_feature(event: Event, venue: Optional[Venue]) -> EventFeature:
    geometry = None
    if venue is not None and venue.latitude is not None and venue.longitude is not None:
        geometry = PointGeometry(coordinates=(venue.longitude, venue.latitude))

    return EventFeature(
        id=str(event.event_id),
        geometry=geometry,
        properties=EventProperties(
            title=event.title,
            start_ts=event.start_ts,
            end_ts=event.end_ts,
            url=event.url,
            price=event.price,
            description=event.description,
            organizer=event.organizer,
            source=event.source,
            venue_name=venue.name if venue else None,
            address=venue.address_line if venue and venue.address_line else None,
        ),
    )


async def get_event_detail(
    session: AsyncSession, event_id: uuid.UUID, include_unpublished: bool = False
) -> EventDetail:
    event, venue = await load_event(session, event_id, include_unpublished)
    return EventDetail(
        event_id=str(event.event_id),
        canonical_key=event.canonical_key,
        title=event.title,
        start_ts=event.start_ts,
        end_ts=event.end_ts,
        description=event.description,
        url=event.url,
        price=event.price,
        organizer=event.organizer,
        source=event.source,
        moderation_state=event.moderation_state,
        quality_score=event.quality_score,
        published_via=event.published_via,
        venue=_venue_detail(venue) if venue else None,
        created_at=event.created_at,
        updated_at=event.updated_at,
    )


def _venue_detail(venue: Venue) -> VenueDetail:
    return VenueDetail(
        venue_id=str(venue.venue_id),
        name=venue.name,
        address_line=venue.address_line or None,
        city=venue.city or None,
        state=venue.state or None,
        postal_code=venue.postal_code,
        country=venue.country,
        latitude=venue.latitude,
        longitude=venue.longitude,
        geocode_confidence=venue.geocode_confidence,
    )


async def unpublish_event(
    session: AsyncSession,
    event_id: uuid.UUID,
    reason: UnpublishReason,
    note: Optional[str] = None,
) -> Event:
    """Block an event from the public feed. Repeating the call is harmless."""
    event, _ = await load_event(session, event_id, include_unpublished=True)
    previous_state = event.moderation_state

    event.moderation_state = ModerationState.BLOCKED.value
    await session.flush()

    await record_audit(
        session,
        entity_type="event",
        entity_id=str(event.event_id),
        action=AuditAction.UNPUBLISH,
        changes={"reason": reason.value, "note": note, "previous_state": previous_state},
    )
    logger.info("event_unpublished", event_id=str(event.event_id), reason=reason.value,
                previous_state=previous_state)
    return event
