"""
Tests for the public /v1/events endpoints.
"""

import uuid

import pytest


async def publish_flyer(client, png_bytes):
    response = await client.post(
        "/v1/submissions", files={"file": ("board.png", png_bytes, "image/png")}
    )
    return response.json()["candidates"][0]["eventId"]


class TestFeed:

    @pytest.mark.asyncio
    async def test_geojson_feed(self, client, png_bytes):
        event_id = await publish_flyer(client, png_bytes)

        response = await client.get("/v1/events")

        assert response.status_code == 200
        body = response.json()
        assert body["type"] == "FeatureCollection"
        assert len(body["features"]) == 1
        feature = body["features"][0]
        assert feature["id"] == event_id
        assert feature["geometry"]["coordinates"] == [-122.3321, 47.6062]
        assert feature["properties"]["title"] == "Jazz Night"
        assert feature["properties"]["venue_name"] == "Town Hall"

    @pytest.mark.asyncio
    async def test_keyword_filter(self, client, png_bytes):
        await publish_flyer(client, png_bytes)

        hit = await client.get("/v1/events", params={"q": "LAWN"})
        miss = await client.get("/v1/events", params={"q": "poetry"})

        assert len(hit.json()["features"]) == 1
        assert miss.json()["features"] == []

    @pytest.mark.asyncio
    async def test_bbox_filter(self, client, png_bytes):
        await publish_flyer(client, png_bytes)

        seattle = await client.get("/v1/events", params={"bbox": "-123,47,-122,48"})
        boston = await client.get("/v1/events", params={"bbox": "-72,42,-70,43"})

        assert len(seattle.json()["features"]) == 1
        assert boston.json()["features"] == []

    @pytest.mark.asyncio
    async def test_bad_bbox(self, client):
        assert (await client.get("/v1/events", params={"bbox": "1,2,3"})).status_code == 400
        assert (await client.get("/v1/events", params={"bbox": "a,b,c,d"})).status_code == 400
        assert (await client.get("/v1/events", params={"bbox": "0,50,1,40"})).status_code == 400

    @pytest.mark.asyncio
    async def test_limit_bounds(self, client):
        assert (await client.get("/v1/events", params={"limit": 0})).status_code == 422
        assert (await client.get("/v1/events", params={"limit": 501})).status_code == 422


class TestDetail:

    @pytest.mark.asyncio
    async def test_detail(self, client, png_bytes):
        event_id = await publish_flyer(client, png_bytes)

        response = await client.get(f"/v1/events/{event_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["moderation_state"] == "approved"
        assert body["published_via"] == "auto"
        assert body["venue"]["city"] == "Seattle"

    @pytest.mark.asyncio
    async def test_unknown_event(self, client):
        assert (await client.get(f"/v1/events/{uuid.uuid4()}")).status_code == 404
        assert (await client.get(f"/v1/events/{uuid.uuid4()}/ics")).status_code == 404


class TestCalendarExport:

    @pytest.mark.asyncio
    async def test_ics_download(self, client, png_bytes, settings):
        event_id = await publish_flyer(client, png_bytes)

        response = await client.get(f"/v1/events/{event_id}/ics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/calendar")
        assert response.headers["content-disposition"] == (
            f'attachment; filename="event-{event_id}.ics"'
        )
        assert response.text.startswith("BEGIN:VCALENDAR\r\n")
        assert f"UID:evt_{event_id}@{settings.ICS_UID_DOMAIN}" in response.text
        assert "DTSTART:20300715T190000Z" in response.text
