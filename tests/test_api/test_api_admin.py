"""
Tests for the /v1/admin operator endpoints.
"""

import uuid

import pytest


async def process_flyer(client, png_bytes):
    """Upload the standard flyer; returns (published candidate, review candidate)."""
    response = await client.post(
        "/v1/submissions", files={"file": ("board.png", png_bytes, "image/png")}
    )
    jazz, quiz = response.json()["candidates"]
    return jazz, quiz


class TestReviewQueue:

    @pytest.mark.asyncio
    async def test_pending_and_stats(self, client, png_bytes):
        _, quiz = await process_flyer(client, png_bytes)

        pending = await client.get("/v1/admin/review")
        stats = await client.get("/v1/admin/review/stats")

        assert pending.status_code == 200
        items = pending.json()
        assert [item["candidate_id"] for item in items] == [quiz["candidateId"]]
        assert items[0]["fields"]["title"] == "Community Quiz"

        assert stats.json()["needs_review"] == 1
        assert stats.json()["published"] == 1
        assert stats.json()["total"] == 2

    @pytest.mark.asyncio
    async def test_publish_from_queue(self, client, png_bytes):
        _, quiz = await process_flyer(client, png_bytes)

        response = await client.post(
            f"/v1/admin/candidates/{quiz['candidateId']}/decision",
            json={"decision": "published", "reason": "looks fine"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["decision"] == "published"
        assert body["event_id"]

        detail = await client.get(f"/v1/admin/events/{body['event_id']}")
        assert detail.json()["published_via"] == "manual"
        assert (await client.get("/v1/admin/review")).json() == []

    @pytest.mark.asyncio
    async def test_unknown_candidate(self, client):
        response = await client.post(
            f"/v1/admin/candidates/{uuid.uuid4()}/decision", json={"decision": "blocked"}
        )
        assert response.status_code == 404
        assert response.json()["error_code"] == "ERR_NOT_FOUND"


class TestUnpublish:

    @pytest.mark.asyncio
    async def test_unpublish_hides_event(self, client, png_bytes):
        jazz, _ = await process_flyer(client, png_bytes)
        event_id = jazz["eventId"]

        response = await client.post(
            f"/v1/admin/events/{event_id}/unpublish", json={"reason": "spam"}
        )

        assert response.status_code == 200
        assert response.json()["moderation_state"] == "blocked"
        assert (await client.get("/v1/events")).json()["features"] == []
        assert (await client.get(f"/v1/events/{event_id}")).status_code == 404

        admin_view = await client.get(f"/v1/admin/events/{event_id}")
        assert admin_view.json()["moderation_state"] == "blocked"

    @pytest.mark.asyncio
    async def test_unknown_reason(self, client, png_bytes):
        jazz, _ = await process_flyer(client, png_bytes)
        response = await client.post(
            f"/v1/admin/events/{jazz['eventId']}/unpublish", json={"reason": "boring"}
        )
        assert response.status_code == 422


class TestMerge:

    @pytest.mark.asyncio
    async def test_merge_blocks_duplicate(self, client, png_bytes):
        jazz, quiz = await process_flyer(client, png_bytes)
        decided = await client.post(
            f"/v1/admin/candidates/{quiz['candidateId']}/decision",
            json={"decision": "published"},
        )
        duplicate_id = decided.json()["event_id"]

        response = await client.post(
            "/v1/admin/events/merge",
            json={
                "primary_event_id": jazz["eventId"],
                "duplicate_event_id": duplicate_id,
                "reason": "same evening, same hall",
                "similarity_score": 0.7,
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["primary_event_id"] == jazz["eventId"]
        assert body["duplicate_event_id"] == duplicate_id
        assert body["similarity_score"] == 0.7

        feed = (await client.get("/v1/events")).json()
        assert [f["id"] for f in feed["features"]] == [jazz["eventId"]]

    @pytest.mark.asyncio
    async def test_self_merge_rejected(self, client, png_bytes):
        jazz, _ = await process_flyer(client, png_bytes)
        response = await client.post(
            "/v1/admin/events/merge",
            json={
                "primary_event_id": jazz["eventId"],
                "duplicate_event_id": jazz["eventId"],
                "reason": "oops",
            },
        )
        assert response.status_code == 400
        assert response.json()["error_code"] == "ERR_SELF_MERGE"


class TestApiKey:

    @pytest.fixture
    def settings(self, settings):
        return settings.model_copy(update={"API_KEY": "secret"})

    @pytest.mark.asyncio
    async def test_admin_requires_key(self, client):
        assert (await client.get("/v1/admin/review")).status_code == 401
        wrong = await client.get("/v1/admin/review", headers={"X-API-Key": "nope"})
        assert wrong.status_code == 401

        ok = await client.get("/v1/admin/review", headers={"X-API-Key": "secret"})
        assert ok.status_code == 200

    @pytest.mark.asyncio
    async def test_reprocess_requires_key(self, client):
        response = await client.post(f"/v1/submissions/{uuid.uuid4()}/reprocess")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_public_endpoints_stay_open(self, client):
        assert (await client.get("/v1/events")).status_code == 200
        assert (await client.get("/health")).status_code == 200
