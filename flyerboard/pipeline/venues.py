"""
Venue resolution.

Venues are shared across events, so writes go through the unique
(name, address_line, city, state) constraint and location upgrades are a
single conditional UPDATE: the stored point only changes when the new
geocode is strictly more confident.
"""

from typing import Optional

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.models.tables import Venue
from flyerboard.schemas.geocoding import GeocodeResult

logger = structlog.get_logger(__name__)


async def find_venue(
    session: AsyncSession, name: str, address_line: str, city: str, state: str
) -> Optional[Venue]:
    result = await session.execute(
        select(Venue).where(
            Venue.name == name,
            Venue.address_line == address_line,
            Venue.city == city,
            Venue.state == state,
        )
    )
    return result.scalar_one_or_none()


async def find_venue_by_name(session: AsyncSession, name: str) -> Optional[Venue]:
    """Case-insensitive name match; prefers the best-located venue."""
    result = await session.execute(
        select(Venue)
        .where(func.lower(Venue.name) == name.strip().lower())
        .order_by(Venue.geocode_confidence.desc().nulls_last(), Venue.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _insert_venue(session: AsyncSession, venue: Venue) -> Optional[Venue]:
    """Insert inside a savepoint. None if a concurrent writer got there first."""
    try:
        async with session.begin_nested():
            session.add(venue)
            await session.flush()
    except IntegrityError:
        return None
    return venue


async def upsert_geocoded_venue(
    session: AsyncSession,
    name: str,
    address_line: str,
    geocode: GeocodeResult,
    default_country: str = "US",
) -> tuple[Venue, bool]:
    """
    Create the venue or upgrade its location.
    Returns (venue, changed) where changed means the point was written.
    """
    city = geocode.components.city or ""
    state = geocode.components.state or ""
    values = {
        "latitude": geocode.latitude,
        "longitude": geocode.longitude,
        "geocode_confidence": geocode.confidence,
        "geocode_data": geocode.model_dump(mode="json"),
    }

    venue = await find_venue(session, name, address_line, city, state)
    if venue is None:
        venue = await _insert_venue(
            session,
            Venue(
                name=name,
                address_line=address_line,
                city=city,
                state=state,
                postal_code=geocode.components.postal_code,
                country=geocode.components.country or default_country,
                **values,
            ),
        )
        if venue is not None:
            logger.info("venue_created", venue_id=str(venue.venue_id), name=name,
                        confidence=geocode.confidence)
            return venue, True
        venue = await find_venue(session, name, address_line, city, state)
        if venue is None:
            raise LookupError(f"venue {name!r} vanished after a unique conflict")

    result = await session.execute(
        update(Venue)
        .where(
            Venue.venue_id == venue.venue_id,
            or_(
                Venue.geocode_confidence.is_(None),
                Venue.geocode_confidence < geocode.confidence,
            ),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    upgraded = result.rowcount == 1
    if upgraded:
        await session.refresh(venue)
        logger.info("venue_location_upgraded", venue_id=str(venue.venue_id),
                    confidence=geocode.confidence)
    return venue, upgraded


async def find_or_create_venue(
    session: AsyncSession, name: str, address_line: Optional[str] = None
) -> Venue:
    """Venue for promotion: reuse by name, else a minimal ungeocoded row."""
    venue = await find_venue_by_name(session, name)
    if venue is not None:
        return venue

    created = await _insert_venue(
        session, Venue(name=name.strip(), address_line=(address_line or "").strip(), city="", state="")
    )
    if created is not None:
        logger.info("venue_created_minimal", venue_id=str(created.venue_id), name=name)
        return created

    venue = await find_venue_by_name(session, name)
    if venue is None:
        raise LookupError(f"venue {name!r} vanished after a unique conflict")
    return venue
