"""
Tests for venue creation and compare-and-upgrade.
"""

import pytest
from sqlalchemy import func, select

from flyerboard.models.tables import Venue
from flyerboard.pipeline.venues import find_or_create_venue, upsert_geocoded_venue


async def venue_count(session):
    return (await session.execute(select(func.count(Venue.venue_id)))).scalar_one()


class TestUpsertGeocodedVenue:

    @pytest.mark.asyncio
    async def test_creates_located_venue(self, session, fakes):
        geocode = fakes["geocode_result"](confidence=0.8)
        venue, changed = await upsert_geocoded_venue(session, "Town Hall", "123 Main St", geocode)

        assert changed
        assert venue.latitude == 47.6062
        assert venue.city == "Seattle"
        assert venue.state == "WA"
        assert venue.geocode_confidence == 0.8

    @pytest.mark.asyncio
    async def test_less_confident_geocode_does_not_move_venue(self, session, fakes):
        make = fakes["geocode_result"]
        await upsert_geocoded_venue(session, "Town Hall", "123 Main St", make(confidence=0.9))
        venue, changed = await upsert_geocoded_venue(
            session, "Town Hall", "123 Main St", make(latitude=1.0, confidence=0.8)
        )

        assert not changed
        assert venue.latitude == 47.6062
        assert venue.geocode_confidence == 0.9
        assert await venue_count(session) == 1

    @pytest.mark.asyncio
    async def test_equal_confidence_does_not_move_venue(self, session, fakes):
        make = fakes["geocode_result"]
        await upsert_geocoded_venue(session, "Town Hall", "123 Main St", make(confidence=0.8))
        _, changed = await upsert_geocoded_venue(
            session, "Town Hall", "123 Main St", make(latitude=1.0, confidence=0.8)
        )
        assert not changed

    @pytest.mark.asyncio
    async def test_more_confident_geocode_upgrades(self, session, fakes):
        make = fakes["geocode_result"]
        await upsert_geocoded_venue(session, "Town Hall", "123 Main St", make(confidence=0.76))
        venue, changed = await upsert_geocoded_venue(
            session, "Town Hall", "123 Main St", make(latitude=47.61, confidence=0.95)
        )

        assert changed
        assert venue.latitude == 47.61
        assert venue.geocode_confidence == 0.95
        assert await venue_count(session) == 1


class TestFindOrCreateVenue:

    @pytest.mark.asyncio
    async def test_minimal_venue_has_no_location(self, session):
        venue = await find_or_create_venue(session, "The Pub", "9 Oak Rd")
        assert venue.address_line == "9 Oak Rd"
        assert venue.latitude is None
        assert venue.geocode_confidence is None

    @pytest.mark.asyncio
    async def test_name_match_is_case_insensitive(self, session):
        first = await find_or_create_venue(session, "The Pub")
        second = await find_or_create_venue(session, "  the PUB ")
        assert first.venue_id == second.venue_id
        assert await venue_count(session) == 1

    @pytest.mark.asyncio
    async def test_prefers_located_venue(self, session, fakes):
        await find_or_create_venue(session, "Town Hall")
        located, _ = await upsert_geocoded_venue(
            session, "Town Hall", "123 Main St", fakes["geocode_result"]()
        )
        assert (await find_or_create_venue(session, "town hall")).venue_id == located.venue_id
