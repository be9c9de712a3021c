"""
End-to-end tests for the submission pipeline with fake capabilities.
"""

import uuid

import pytest
from sqlalchemy import func, select

from flyerboard.engines.base import EngineError, ExtractionEngine
from flyerboard.engines.stub_engine import StubEngine
from flyerboard.models.enums import Decision, SubmissionStatus
from flyerboard.models.tables import Event, EventCandidate, FlyerRegion, Submission, Venue
from flyerboard.pipeline.errors import (
    ExtractionFailure,
    InvalidTransition,
    NotFound,
    ProviderError,
)
from flyerboard.pipeline.promotion import PromotionOutcome

JAZZ = {
    "title": "Jazz Night",
    "date_time": "2030-07-15T19:00:00",
    "venue": "Town Hall",
    "address": "123 Main St, Seattle, WA",
}
BAKE_SALE = {"title": "Bake Sale", "date_time": "2030-07-20T10:00:00"}


class FailingEngine(ExtractionEngine):

    def __init__(self, code="ERR_EXTRACTION_TIMEOUT"):
        self.code = code

    @property
    def engine_name(self) -> str:
        return "failing"

    @property
    def engine_version(self) -> str:
        return "0"

    async def extract(self, image_bytes: bytes):
        raise EngineError(self.engine_name, self.code, "vision model did not answer")

    async def health_check(self) -> bool:
        return False


async def count(session_factory, column):
    async with session_factory() as session:
        return (await session.execute(select(func.count(column)))).scalar_one()


async def load_submission(session_factory, submission_id):
    async with session_factory() as session:
        return await session.get(Submission, submission_id)


async def load_candidates(session_factory):
    async with session_factory() as session:
        result = await session.execute(
            select(EventCandidate).order_by(EventCandidate.extraction_event_id)
        )
        return list(result.scalars().all())


@pytest.fixture
def standard_pipeline(make_pipeline, fakes):
    def _build(**overrides):
        return make_pipeline(
            result=fakes["detection"]([JAZZ, BAKE_SALE]),
            assessor=fakes["assessor"](scores={"Jazz Night": 0.85, "Bake Sale": 0.50}),
            geocoder=fakes["geocoder"](results={"Seattle": fakes["geocode_result"](confidence=0.8)}),
            **overrides,
        )
    return _build


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_publishes_high_scores_and_queues_the_rest(
        self, standard_pipeline, upload, session_factory
    ):
        submission_id = await upload()

        report = await standard_pipeline().process(submission_id)

        assert report.status == SubmissionStatus.DONE
        assert report.regions == 1
        assert [c.decision for c in report.candidates] == [Decision.PUBLISHED, Decision.NEEDS_REVIEW]
        assert report.candidates[0].promotion == PromotionOutcome.CREATED
        assert report.skipped == []

        assert await count(session_factory, Event.event_id) == 1
        assert await count(session_factory, Venue.venue_id) == 1

        submission = await load_submission(session_factory, submission_id)
        assert submission.status == SubmissionStatus.DONE.value
        assert submission.image_quality == "good"

        jazz, bake_sale = await load_candidates(session_factory)
        assert jazz.composite_score == 0.85
        assert jazz.decided_via == "auto"
        assert jazz.geocode["latitude"] == 47.6062
        assert jazz.event_id is not None
        assert bake_sale.decision == Decision.NEEDS_REVIEW.value
        assert bake_sale.event_id is None

    @pytest.mark.asyncio
    async def test_event_uses_the_geocoded_venue(self, standard_pipeline, upload, session_factory):
        await standard_pipeline().process(await upload())

        async with session_factory() as session:
            event = (await session.execute(select(Event))).scalar_one()
            venue = (await session.execute(select(Venue))).scalar_one()

        assert event.venue_id == venue.venue_id
        assert venue.latitude == 47.6062
        assert venue.geocode_confidence == 0.8

    @pytest.mark.asyncio
    async def test_free_text_from_the_model_is_stored_whole(
        self, make_pipeline, fakes, upload, session_factory
    ):
        quality = "good, slight glare on the left third of the board"
        region_id = "flyer-top-left-" + "x" * 80
        result = fakes["detection"]([JAZZ]).model_copy(update={"image_quality": quality})
        result.flyers_detected[0].region_id = region_id

        submission_id = await upload()
        report = await make_pipeline(result=result).process(submission_id)

        assert report.status == SubmissionStatus.DONE
        submission = await load_submission(session_factory, submission_id)
        assert submission.image_quality == quality
        async with session_factory() as session:
            region = (await session.execute(select(FlyerRegion))).scalar_one()
        assert region.region_id == region_id

    def test_model_and_provider_columns_are_unbounded(self):
        # SQLite ignores VARCHAR lengths, PostgreSQL does not
        columns = [
            Submission.__table__.c.image_quality,
            FlyerRegion.__table__.c.region_id,
            EventCandidate.__table__.c.extraction_event_id,
            Venue.__table__.c.postal_code,
            Venue.__table__.c.country,
        ]
        for column in columns:
            assert getattr(column.type, "length", None) is None, column.name

    @pytest.mark.asyncio
    async def test_empty_extraction_finishes(self, make_pipeline, upload, session_factory):
        submission_id = await upload()
        report = await make_pipeline().process(submission_id)

        assert report.status == SubmissionStatus.DONE
        assert report.candidates == []
        submission = await load_submission(session_factory, submission_id)
        assert submission.processing_notes.startswith("stub extraction")

    @pytest.mark.asyncio
    async def test_auto_publish_disabled(self, standard_pipeline, upload, session_factory):
        report = await standard_pipeline(AUTO_PUBLISH_ENABLED=False).process(await upload())

        assert [c.decision for c in report.candidates] == [Decision.NEEDS_REVIEW] * 2
        assert await count(session_factory, Event.event_id) == 0


class TestDecisions:

    @pytest.mark.asyncio
    async def test_inappropriate_candidate_blocked(self, make_pipeline, fakes, upload, session_factory):
        pipeline = make_pipeline(
            result=fakes["detection"]([{"title": "Spam"}]),
            assessor=fakes["assessor"](default=0.99, blocked={"Spam": "advertising"}),
        )
        report = await pipeline.process(await upload())

        assert report.candidates[0].decision == Decision.BLOCKED
        (candidate,) = await load_candidates(session_factory)
        assert candidate.decision_reason == "advertising"
        assert await count(session_factory, Event.event_id) == 0

    @pytest.mark.asyncio
    async def test_low_confidence_geocode_records_no_venue(
        self, make_pipeline, fakes, upload, session_factory
    ):
        pipeline = make_pipeline(
            result=fakes["detection"]([{"title": "Yard Sale", "address": "5 Pine St, Seattle"}]),
            geocoder=fakes["geocoder"](results={"Seattle": fakes["geocode_result"](confidence=0.7)}),
        )
        report = await pipeline.process(await upload())

        assert report.candidates[0].geocoded
        assert report.candidates[0].venue_id is None
        assert await count(session_factory, Venue.venue_id) == 0

    @pytest.mark.asyncio
    async def test_missing_title_keeps_published_decision(
        self, make_pipeline, fakes, upload, session_factory
    ):
        pipeline = make_pipeline(
            result=fakes["detection"]([{"date_time": "2030-01-01"}]),
            assessor=fakes["assessor"](default=0.95),
        )
        report = await pipeline.process(await upload())

        outcome = report.candidates[0]
        assert outcome.ok
        assert outcome.decision == Decision.PUBLISHED
        assert outcome.errors[0].stage == "promotion"
        assert outcome.errors[0].error_code == "ERR_MISSING_TITLE"
        assert await count(session_factory, Event.event_id) == 0
        (candidate,) = await load_candidates(session_factory)
        assert candidate.decision == Decision.PUBLISHED.value


class TestIsolation:

    @pytest.mark.asyncio
    async def test_one_bad_candidate_does_not_stop_the_rest(
        self, make_pipeline, fakes, upload, session_factory
    ):
        flaky = {"title": "Flaky", "date_time": "2030-05-05", "address": "1 Broken Ave"}
        pipeline = make_pipeline(
            result=fakes["detection"]([JAZZ], [flaky, BAKE_SALE]),
            assessor=fakes["assessor"](default=0.9, broken=("Bake Sale",)),
            geocoder=fakes["geocoder"](
                results={"Seattle": fakes["geocode_result"]()},
                errors={"Broken": ProviderError("upstream 503")},
            ),
        )
        report = await pipeline.process(await upload())

        assert report.status == SubmissionStatus.DONE
        assert report.regions == 2
        assert len(report.candidates) == 3
        assert report.skipped == []
        assert all(c.decision == Decision.PUBLISHED for c in report.candidates)

        stages = {err.stage for c in report.candidates for err in c.errors}
        assert stages == {"moderation", "geocoding"}
        assert await count(session_factory, Event.event_id) == 3

    @pytest.mark.asyncio
    async def test_moderation_failure_uses_heuristic_score(
        self, make_pipeline, fakes, upload, session_factory
    ):
        pipeline = make_pipeline(
            result=fakes["detection"]([{"title": "Broken"}]),
            assessor=fakes["assessor"](broken=("Broken",)),
        )
        report = await pipeline.process(await upload())

        assert report.candidates[0].score == 0.85
        (candidate,) = await load_candidates(session_factory)
        assert candidate.quality_source == "heuristic"

    @pytest.mark.asyncio
    async def test_unexpected_geocoder_error_is_recovered(
        self, make_pipeline, fakes, upload, session_factory
    ):
        pipeline = make_pipeline(
            result=fakes["detection"]([JAZZ]),
            assessor=fakes["assessor"](default=0.9),
            geocoder=fakes["geocoder"](
                errors={"Seattle": ValueError("could not convert string to float: 'high'")},
            ),
        )
        report = await pipeline.process(await upload())

        assert report.status == SubmissionStatus.DONE
        (outcome,) = report.candidates
        assert outcome.decision == Decision.PUBLISHED
        assert not outcome.geocoded
        assert [(e.stage, e.error_code) for e in outcome.errors] == [("geocoding", "ERR_GEOCODING")]
        assert await count(session_factory, Venue.venue_id) == 1

        submission = await load_submission(session_factory, report.submission_id)
        assert submission.status == SubmissionStatus.DONE.value


class TestFailures:

    @pytest.mark.asyncio
    async def test_extraction_failure_marks_submission_error(
        self, make_pipeline, upload, session_factory
    ):
        submission_id = await upload()

        with pytest.raises(ExtractionFailure) as exc:
            await make_pipeline(extraction=FailingEngine()).process(submission_id)

        assert exc.value.error_code == "ERR_EXTRACTION_TIMEOUT"
        submission = await load_submission(session_factory, submission_id)
        assert submission.status == SubmissionStatus.ERROR.value
        assert submission.error_code == "ERR_EXTRACTION_TIMEOUT"
        assert await count(session_factory, FlyerRegion.flyer_id) == 0

    @pytest.mark.asyncio
    async def test_missing_image(self, make_pipeline, upload, store, session_factory):
        submission_id = await upload()
        store.delete_submission_artifacts(str(submission_id))

        with pytest.raises(ExtractionFailure) as exc:
            await make_pipeline().process(submission_id)

        assert exc.value.error_code == "ERR_IMAGE_MISSING"

    @pytest.mark.asyncio
    async def test_unknown_submission(self, make_pipeline):
        with pytest.raises(NotFound):
            await make_pipeline().process(uuid.uuid4())


class TestReprocessing:

    @pytest.mark.asyncio
    async def test_finished_submission_needs_reprocess_flag(self, standard_pipeline, upload):
        pipeline = standard_pipeline()
        submission_id = await upload()
        await pipeline.process(submission_id)

        with pytest.raises(InvalidTransition):
            await pipeline.process(submission_id)

    @pytest.mark.asyncio
    async def test_rerun_creates_no_duplicates(self, standard_pipeline, upload, session_factory):
        pipeline = standard_pipeline()
        submission_id = await upload()

        await pipeline.process(submission_id)
        report = await pipeline.process(submission_id, reprocess=True)

        assert report.status == SubmissionStatus.DONE
        assert report.candidates[0].promotion == PromotionOutcome.UNCHANGED
        assert await count(session_factory, FlyerRegion.flyer_id) == 1
        assert await count(session_factory, EventCandidate.candidate_id) == 2
        assert await count(session_factory, Event.event_id) == 1
        assert await count(session_factory, Venue.venue_id) == 1

    @pytest.mark.asyncio
    async def test_rerun_after_error_recovers(self, make_pipeline, fakes, upload, session_factory):
        submission_id = await upload()
        with pytest.raises(ExtractionFailure):
            await make_pipeline(extraction=FailingEngine()).process(submission_id)

        working = make_pipeline(
            extraction=StubEngine(fakes["detection"]([JAZZ])),
            assessor=fakes["assessor"](default=0.9),
        )
        report = await working.process(submission_id, reprocess=True)

        assert report.status == SubmissionStatus.DONE
        submission = await load_submission(session_factory, submission_id)
        assert submission.error_code is None
        assert submission.error_message is None

    @pytest.mark.asyncio
    async def test_rerun_rederives_decisions(self, make_pipeline, fakes, upload, session_factory):
        result = fakes["detection"]([BAKE_SALE])
        submission_id = await upload()

        first = await make_pipeline(result=result, assessor=fakes["assessor"](default=0.5)).process(
            submission_id
        )
        assert first.candidates[0].decision == Decision.NEEDS_REVIEW

        second = await make_pipeline(result=result, assessor=fakes["assessor"](default=0.9)).process(
            submission_id, reprocess=True
        )
        assert second.candidates[0].decision == Decision.PUBLISHED
        assert await count(session_factory, Event.event_id) == 1
