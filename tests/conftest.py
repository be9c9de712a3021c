"""
Shared test fixtures.

Every test gets its own in-memory SQLite database and artifact directory.
The three external capabilities are replaced by the fakes below.
"""

import io
from typing import Optional

import httpx
import pytest
import pytest_asyncio
from PIL import Image

from flyerboard.config import Settings
from flyerboard.engines.stub_engine import StubEngine
from flyerboard.models.database import build_engine, build_session_factory, init_models
from flyerboard.models.enums import QualitySource, SubmissionStatus
from flyerboard.models.tables import EventCandidate, FlyerRegion, Submission
from flyerboard.pipeline.capabilities import Capabilities
from flyerboard.pipeline.errors import NoResult
from flyerboard.pipeline.geocoding import Geocoder
from flyerboard.pipeline.moderation import QualityAssessor
from flyerboard.pipeline.orchestrator import SubmissionPipeline
from flyerboard.publishing.intake import create_submission
from flyerboard.schemas.extraction import DetectedFlyer, ExtractedEvent, FlyerDetectionResult, Point
from flyerboard.schemas.geocoding import AddressComponents, GeocodeResult
from flyerboard.schemas.moderation import QualityAssessment, QualityFactors
from flyerboard.storage.artifact_store import ArtifactStore


# ── Fakes ────────────────────────────────────────────────────

class FakeAssessor(QualityAssessor):
    """Scores by title. Titles in ``blocked`` are inappropriate; titles in ``broken`` raise."""

    def __init__(
        self,
        scores: Optional[dict] = None,
        default: float = 0.5,
        blocked: Optional[dict] = None,
        broken: tuple = (),
    ):
        self.scores = scores or {}
        self.default = default
        self.blocked = blocked or {}
        self.broken = broken
        self.calls = []

    @property
    def assessor_name(self) -> str:
        return "fake"

    async def assess(self, fields: dict) -> QualityAssessment:
        title = fields.get("title")
        self.calls.append(title)
        if title in self.broken:
            raise RuntimeError(f"classifier exploded on {title}")

        score = self.scores.get(title, self.default)
        return QualityAssessment(
            factors=QualityFactors(
                completeness=score, datetime=score, venue=score,
                contact=score, professionalism=score, readability=score,
            ),
            appropriate=title not in self.blocked,
            reason=self.blocked.get(title),
            score=score,
            source=QualitySource.CLASSIFIER,
        )


class FakeGeocoder(Geocoder):
    """Resolves addresses containing a known key; ``errors`` keys raise instead."""

    def __init__(self, results: Optional[dict] = None, errors: Optional[dict] = None):
        self.results = results or {}
        self.errors = errors or {}
        self.calls = []

    @property
    def provider_name(self) -> str:
        return "fake"

    async def geocode(self, address: str) -> GeocodeResult:
        self.calls.append(address)
        for key, error in self.errors.items():
            if key in address:
                raise error
        for key, result in self.results.items():
            if key in address:
                return result
        raise NoResult(f"no result for {address}")


def geocode_result(latitude=47.6062, longitude=-122.3321, confidence=0.9,
                   address="123 Main St, Seattle, WA", city="Seattle"):
    return GeocodeResult(
        latitude=latitude,
        longitude=longitude,
        formatted_address=address,
        confidence=confidence,
        components=AddressComponents(city=city, state="WA", country="US"),
        raw={"fake": True},
    )


def detection(*flyers: list[dict]) -> FlyerDetectionResult:
    """One DetectedFlyer per argument; each is a list of field dicts."""
    detected = []
    for i, events in enumerate(flyers, start=1):
        detected.append(
            DetectedFlyer(
                region_id=f"r{i}",
                confidence=0.9,
                polygon=[Point(x=0, y=0), Point(x=100, y=0), Point(x=100, y=150), Point(x=0, y=150)],
                events=[
                    ExtractedEvent(
                        event_id=f"e{j}",
                        fields=fields,
                        confidences={"title": 0.9},
                        source_excerpt=fields.get("title"),
                    )
                    for j, fields in enumerate(events, start=1)
                ],
            )
        )
    return FlyerDetectionResult(
        flyers_detected=detected,
        total_regions=len(detected),
        image_quality="good",
        processing_notes="test extraction",
    )


# ── Fixtures ─────────────────────────────────────────────────

@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ARTIFACT_ROOT=str(tmp_path / "artifacts"),
        PROMETHEUS_ENABLED=False,
        OPENAI_API_KEY=None,
        GEOCODER_API_KEY=None,
        API_KEY=None,
        REGION_TZ="UTC",
    )


@pytest_asyncio.fixture
async def engine(settings):
    engine = build_engine(settings)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(settings):
    return ArtifactStore(settings.ARTIFACT_ROOT)


@pytest.fixture
def png_bytes():
    """A small but real PNG photo."""
    buffer = io.BytesIO()
    Image.new("RGB", (64, 48), color=(200, 180, 40)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def fakes():
    """Fake classes and builders, for tests that need their own configuration."""
    return {
        "assessor": FakeAssessor,
        "geocoder": FakeGeocoder,
        "geocode_result": geocode_result,
        "detection": detection,
    }


@pytest.fixture
def make_pipeline(settings, session_factory, store):
    """Build a SubmissionPipeline around fake capabilities."""

    def _make(result=None, assessor=None, geocoder=None, extraction=None, **overrides):
        capabilities = Capabilities(
            extraction=extraction or StubEngine(result),
            assessor=assessor or FakeAssessor(),
            geocoder=geocoder or FakeGeocoder(),
        )
        pipeline_settings = settings.model_copy(update=overrides) if overrides else settings
        return SubmissionPipeline(pipeline_settings, capabilities, session_factory, store)

    return _make


@pytest.fixture
def upload(session_factory, store, settings, png_bytes):
    """Create a committed submission; returns its id."""

    async def _upload(data: Optional[bytes] = None):
        async with session_factory() as session:
            submission = await create_submission(
                session, store, data or png_bytes, settings.max_upload_bytes, file_name="board.png"
            )
            await session.commit()
            return submission.submission_id

    return _upload


@pytest.fixture
def make_candidate():
    """Persist a submission, a region and one candidate; returns the candidate."""

    async def _make(session, fields: dict, score: Optional[float] = None, decision=None):
        submission = Submission(
            image_uri="x/raw/original.png",
            file_name="board.png",
            content_type="image/png",
            size_bytes=10,
            image_hash="0" * 64,
            status=SubmissionStatus.DONE.value,
        )
        session.add(submission)
        await session.flush()

        region = FlyerRegion(
            submission_id=submission.submission_id,
            region_id="r1",
            polygon=[{"x": 0, "y": 0}, {"x": 1, "y": 0}, {"x": 1, "y": 1}, {"x": 0, "y": 1}],
            detection_confidence=0.9,
        )
        session.add(region)
        await session.flush()

        candidate = EventCandidate(
            flyer_id=region.flyer_id,
            extraction_event_id="e1",
            fields=fields,
            confidences={},
            composite_score=score,
            decision=decision,
        )
        session.add(candidate)
        await session.flush()
        return candidate

    return _make


# ── HTTP surface ─────────────────────────────────────────────

API_FLYER = [
    {
        "title": "Jazz Night",
        "date_time": "2030-07-15T19:00:00",
        "venue": "Town Hall",
        "address": "123 Main St, Seattle, WA",
        "description": "Live jazz on the lawn",
    },
    {"title": "Community Quiz", "date_time": "2030-07-20T19:00:00"},
]


@pytest.fixture
def api_capabilities():
    """One flyer: a publishable jazz night and a quiz that needs review."""
    return Capabilities(
        extraction=StubEngine(detection(API_FLYER)),
        assessor=FakeAssessor(scores={"Jazz Night": 0.9, "Community Quiz": 0.55}),
        geocoder=FakeGeocoder(results={"Seattle": geocode_result(confidence=0.8)}),
    )


@pytest_asyncio.fixture
async def api_app(settings, api_capabilities):
    from flyerboard.main import create_app

    app = create_app(settings, capabilities=api_capabilities)
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def client(api_app):
    transport = httpx.ASGITransport(app=api_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
