"""
Pipeline orchestrator: takes one submission from uploaded photo to
published events.

Lifecycle: uploaded -> processing -> parsed -> moderating -> geocoding -> done
           (error reachable from any non-terminal state)

Extraction runs once and is fatal on failure. Everything after it is
per-candidate: each candidate's moderation, geocoding, decision and
promotion is isolated in its own savepoint and reported as a
CandidateOutcome, so one bad candidate never takes the submission down.
Each stage commits, so status always reflects the furthest completed stage.
"""

import time
import traceback
import uuid
from typing import Optional

import structlog
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flyerboard.config import Settings
from flyerboard.engines.base import EngineError
from flyerboard.models.enums import Decision, DecisionSource, SubmissionStatus
from flyerboard.models.tables import EventCandidate, FlyerRegion, Submission
from flyerboard.observability.metrics import (
    candidate_decisions_total,
    candidate_stage_failures_total,
    events_promoted_total,
    pipeline_stage_duration_seconds,
    quality_scores,
    submission_processing_duration_seconds,
    submissions_failed_total,
    submissions_processed_total,
)
from flyerboard.pipeline.capabilities import Capabilities
from flyerboard.pipeline.decision import DecisionEngine
from flyerboard.pipeline.errors import (
    ExtractionFailure,
    FlyerboardError,
    GeocodingError,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    PromotionFailure,
)
from flyerboard.pipeline.geocoding import candidate_address
from flyerboard.pipeline.moderation import HeuristicQualityAssessor
from flyerboard.pipeline.promotion import CandidatePromoter, PromotionOutcome
from flyerboard.pipeline.venues import upsert_geocoded_venue
from flyerboard.schemas.extraction import DetectedFlyer, ExtractedEvent, FlyerDetectionResult, first_text
from flyerboard.schemas.moderation import QualityAssessment
from flyerboard.storage.artifact_store import ArtifactStore

logger = structlog.get_logger(__name__)

# Store connectivity errors; everything else from SQLAlchemy is per-candidate
STORE_UNAVAILABLE = (OperationalError, InterfaceError)


# ── Report ───────────────────────────────────────────────────
class StageError(BaseModel):
    stage: str
    error_code: str
    message: str
    recovered: bool = True


class CandidateOutcome(BaseModel):
    """What happened to one candidate in this run."""
    candidate_id: uuid.UUID
    ok: bool = True
    failed_stage: Optional[str] = None
    errors: list[StageError] = []
    score: Optional[float] = None
    decision: Optional[Decision] = None
    geocoded: bool = False
    venue_id: Optional[uuid.UUID] = None
    event_id: Optional[uuid.UUID] = None
    promotion: Optional[PromotionOutcome] = None

    def recovered(self, stage: str, error_code: str, message: str) -> None:
        self.errors.append(StageError(stage=stage, error_code=error_code, message=message))
        candidate_stage_failures_total.labels(stage=stage).inc()

    def skip(self, stage: str, error_code: str, message: str) -> None:
        self.errors.append(
            StageError(stage=stage, error_code=error_code, message=message, recovered=False)
        )
        self.ok = False
        self.failed_stage = stage
        candidate_stage_failures_total.labels(stage=stage).inc()


class PipelineReport(BaseModel):
    submission_id: uuid.UUID
    status: SubmissionStatus
    regions: int = 0
    candidates: list[CandidateOutcome] = []
    duration_ms: int = 0

    @property
    def skipped(self) -> list[CandidateOutcome]:
        return [c for c in self.candidates if not c.ok]

    @property
    def published(self) -> list[CandidateOutcome]:
        return [c for c in self.candidates if c.decision == Decision.PUBLISHED]


# ── Pipeline ─────────────────────────────────────────────────
class SubmissionPipeline:
    """
    Main submission processing pipeline.
    One instance per process; ``process`` opens its own session.
    """

    def __init__(
        self,
        settings: Settings,
        capabilities: Capabilities,
        session_factory: async_sessionmaker[AsyncSession],
        store: ArtifactStore,
        decision_engine: Optional[DecisionEngine] = None,
        promoter: Optional[CandidatePromoter] = None,
    ):
        self.settings = settings
        self.capabilities = capabilities
        self.session_factory = session_factory
        self.store = store
        self.decision_engine = decision_engine or DecisionEngine.from_settings(settings)
        self.promoter = promoter or CandidatePromoter.from_settings(settings)
        self._heuristic = HeuristicQualityAssessor()

    async def process(self, submission_id: uuid.UUID, reprocess: bool = False) -> PipelineReport:
        """
        Process a submission end-to-end.

        ``reprocess`` re-runs a submission already in a terminal (or stuck)
        state. Regions and candidates from the earlier run are reused, never
        duplicated.
        """
        started_at = time.monotonic()

        with structlog.contextvars.bound_contextvars(submission_id=str(submission_id)):
            logger.info("pipeline_started", reprocess=reprocess)

            async with self.session_factory() as session:
                try:
                    report = await self._run(session, submission_id, reprocess)
                except (NotFound, InvalidTransition):
                    raise
                except ExtractionFailure as e:
                    await self._fail_submission(session, submission_id, e.error_code, e.message)
                    raise
                except STORE_UNAVAILABLE as e:
                    error_msg = f"{type(e).__name__}: {e}"
                    logger.error("pipeline_store_unavailable", error=error_msg)
                    await self._fail_submission(session, submission_id, "ERR_PERSISTENCE", error_msg)
                    raise PersistenceFailure(error_msg) from e
                except FlyerboardError as e:
                    await self._fail_submission(session, submission_id, e.error_code, e.message)
                    raise
                except Exception as e:
                    error_msg = f"{type(e).__name__}: {str(e)}"
                    logger.error("pipeline_failed", error=error_msg,
                                 traceback=traceback.format_exc())
                    await self._fail_submission(session, submission_id, "ERR_PIPELINE", error_msg)
                    raise FlyerboardError(error_msg) from e

            duration = time.monotonic() - started_at
            report.duration_ms = int(duration * 1000)
            submission_processing_duration_seconds.observe(duration)
            submissions_processed_total.inc()

            logger.info(
                "pipeline_completed",
                regions=report.regions,
                candidates=len(report.candidates),
                published=len(report.published),
                skipped=len(report.skipped),
                duration_ms=report.duration_ms,
            )
            return report

    async def _run(
        self, session: AsyncSession, submission_id: uuid.UUID, reprocess: bool
    ) -> PipelineReport:
        submission = await self._load_submission(session, submission_id)
        current = SubmissionStatus(submission.status)

        if current != SubmissionStatus.UPLOADED:
            if not reprocess:
                raise InvalidTransition(
                    f"submission is {current.value}; pass reprocess=True to run it again"
                )
            logger.info("submission_reset_for_reprocess", previous_status=current.value)
            await self._set_status(session, submission_id, SubmissionStatus.UPLOADED,
                                   error_code=None, error_message=None)

        # ── Stage 1: EXTRACT ──
        await self._transition(session, submission_id, SubmissionStatus.PROCESSING)
        await session.commit()

        with pipeline_stage_duration_seconds.labels(stage="extraction").time():
            result = await self._extract(submission.image_uri)

        # ── Stage 2: PERSIST REGIONS / CANDIDATES ──
        with pipeline_stage_duration_seconds.labels(stage="persist").time():
            regions, candidates = await self._persist_extraction(session, submission_id, result)
            await session.execute(
                update(Submission)
                .where(Submission.submission_id == submission_id)
                .values(
                    image_quality=result.image_quality,
                    processing_notes=result.processing_notes,
                )
            )
        await self._transition(session, submission_id, SubmissionStatus.PARSED)
        await session.commit()

        outcomes = [CandidateOutcome(candidate_id=c.candidate_id) for c in candidates]

        # ── Stage 3: MODERATE ──
        await self._transition(session, submission_id, SubmissionStatus.MODERATING)
        assessments: dict[uuid.UUID, QualityAssessment] = {}
        with pipeline_stage_duration_seconds.labels(stage="moderation").time():
            for candidate, outcome in zip(candidates, outcomes):
                assessment = await self._moderate_candidate(session, candidate, outcome)
                if assessment is not None:
                    assessments[outcome.candidate_id] = assessment
        await session.commit()

        # ── Stage 4: GEOCODE / DECIDE / PROMOTE ──
        await self._transition(session, submission_id, SubmissionStatus.GEOCODING)
        with pipeline_stage_duration_seconds.labels(stage="geocoding").time():
            for candidate, outcome in zip(candidates, outcomes):
                if not outcome.ok:
                    continue
                await self._resolve_candidate(
                    session, candidate, assessments[outcome.candidate_id], outcome
                )
        await session.commit()

        # ── Stage 5: DONE ──
        await self._transition(session, submission_id, SubmissionStatus.DONE)
        await session.commit()

        return PipelineReport(
            submission_id=submission_id,
            status=SubmissionStatus.DONE,
            regions=regions,
            candidates=outcomes,
        )

    # ─── Stage Helpers ────────────────────────────────────────

    async def _extract(self, image_uri: str) -> FlyerDetectionResult:
        engine = self.capabilities.extraction
        try:
            image_bytes = self.store.load_bytes(image_uri)
        except FileNotFoundError as e:
            raise ExtractionFailure(str(e), "ERR_IMAGE_MISSING") from e

        try:
            result = await engine.extract(image_bytes)
        except EngineError as e:
            logger.error("extraction_failed", engine=e.engine_name,
                         error_code=e.error_code, error=e.message)
            raise ExtractionFailure(e.message, e.error_code) from e

        logger.info("extraction_completed", engine=engine.engine_name,
                    regions=len(result.flyers_detected), candidates=result.candidate_count)
        return result

    async def _persist_extraction(
        self,
        session: AsyncSession,
        submission_id: uuid.UUID,
        result: FlyerDetectionResult,
    ) -> tuple[int, list[EventCandidate]]:
        """Store regions and candidates, reusing rows from earlier runs."""
        region_ids = set()
        candidates: dict[uuid.UUID, EventCandidate] = {}

        for flyer in result.flyers_detected:
            region = await self._get_or_create_region(session, submission_id, flyer)
            region_ids.add(region.flyer_id)
            for extracted in flyer.events:
                candidate = await self._get_or_create_candidate(session, region.flyer_id, extracted)
                candidates.setdefault(candidate.candidate_id, candidate)

        await session.flush()
        logger.info("extraction_persisted", regions=len(region_ids), candidates=len(candidates))
        return len(region_ids), list(candidates.values())

    async def _get_or_create_region(
        self, session: AsyncSession, submission_id: uuid.UUID, flyer: DetectedFlyer
    ) -> FlyerRegion:
        result = await session.execute(
            select(FlyerRegion).where(
                FlyerRegion.submission_id == submission_id,
                FlyerRegion.region_id == flyer.region_id,
            )
        )
        region = result.scalar_one_or_none()
        if region is not None:
            return region

        region = FlyerRegion(
            submission_id=submission_id,
            region_id=flyer.region_id,
            polygon=[p.model_dump() for p in flyer.polygon],
            rotation_deg=flyer.rotation_deg,
            detection_confidence=flyer.confidence,
            notes=flyer.notes,
        )
        session.add(region)
        await session.flush()
        return region

    async def _get_or_create_candidate(
        self, session: AsyncSession, flyer_id: uuid.UUID, extracted: ExtractedEvent
    ) -> EventCandidate:
        result = await session.execute(
            select(EventCandidate).where(
                EventCandidate.flyer_id == flyer_id,
                EventCandidate.extraction_event_id == extracted.event_id,
            )
        )
        candidate = result.scalar_one_or_none()
        if candidate is not None:
            return candidate

        candidate = EventCandidate(
            flyer_id=flyer_id,
            extraction_event_id=extracted.event_id,
            fields=extracted.fields,
            confidences=extracted.confidences,
            source_excerpt=extracted.source_excerpt,
        )
        session.add(candidate)
        await session.flush()
        return candidate

    async def _moderate_candidate(
        self, session: AsyncSession, candidate: EventCandidate, outcome: CandidateOutcome
    ) -> Optional[QualityAssessment]:
        fields = candidate.fields or {}
        try:
            assessment = await self.capabilities.assessor.assess(fields)
        except STORE_UNAVAILABLE:
            raise
        except Exception as e:
            logger.warning("moderation_failed", candidate_id=str(outcome.candidate_id),
                           error=f"{type(e).__name__}: {e}")
            outcome.recovered("moderation", "ERR_MODERATION", str(e)[:500])
            assessment = await self._heuristic.assess(fields)

        try:
            async with session.begin_nested():
                candidate.quality_factors = assessment.factors.model_dump()
                candidate.quality_source = assessment.source.value
                candidate.appropriate = assessment.appropriate
                candidate.moderation_reason = assessment.reason
                candidate.composite_score = assessment.score
                await session.flush()
        except STORE_UNAVAILABLE:
            raise
        except SQLAlchemyError as e:
            logger.error("candidate_skipped", stage="moderation",
                         candidate_id=str(outcome.candidate_id), error=str(e)[:500])
            outcome.skip("moderation", "ERR_CANDIDATE_PERSIST", str(e)[:500])
            return None

        outcome.score = assessment.score
        quality_scores.observe(assessment.score)
        logger.debug("candidate_moderated", candidate_id=str(outcome.candidate_id),
                     score=assessment.score, source=assessment.source.value,
                     appropriate=assessment.appropriate)
        return assessment

    async def _resolve_candidate(
        self,
        session: AsyncSession,
        candidate: EventCandidate,
        assessment: QualityAssessment,
        outcome: CandidateOutcome,
    ) -> None:
        """Geocode, decide and (when published) promote one candidate."""
        candidate_id = str(outcome.candidate_id)
        fields = candidate.fields or {}

        # Geocoding never gates the decision
        geocode = None
        address = candidate_address(fields, self.settings.DEFAULT_COUNTRY)
        if address:
            try:
                geocode = await self.capabilities.geocoder.geocode(address)
            except GeocodingError as e:
                logger.warning("geocoding_failed", candidate_id=candidate_id,
                               error_code=e.error_code, error=e.message)
                outcome.recovered("geocoding", e.error_code, e.message)
            except STORE_UNAVAILABLE:
                raise
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.warning("geocoding_failed", candidate_id=candidate_id,
                               error_code="ERR_GEOCODING", error=error)
                outcome.recovered("geocoding", "ERR_GEOCODING", error[:500])
        else:
            logger.debug("geocoding_skipped_no_address", candidate_id=candidate_id)

        decision = self.decision_engine.decide(assessment)

        try:
            async with session.begin_nested():
                if geocode is not None:
                    candidate.geocode = geocode.model_dump(mode="json")
                    outcome.geocoded = True
                    if self.decision_engine.records_venue(geocode):
                        venue, _ = await upsert_geocoded_venue(
                            session,
                            name=first_text(fields, "venue") or geocode.formatted_address,
                            address_line=first_text(fields, "address", "location", "where")
                            or geocode.formatted_address,
                            geocode=geocode,
                            default_country=self.settings.DEFAULT_COUNTRY,
                        )
                        outcome.venue_id = venue.venue_id

                if candidate.decision and candidate.decision != decision.decision.value:
                    logger.warning("candidate_decision_overwritten", candidate_id=candidate_id,
                                   previous=candidate.decision, current=decision.decision.value,
                                   previous_via=candidate.decided_via)
                candidate.decision = decision.decision.value
                candidate.decision_reason = decision.reason
                candidate.decided_via = decision.via.value
                await session.flush()
        except STORE_UNAVAILABLE:
            raise
        except SQLAlchemyError as e:
            logger.error("candidate_skipped", stage="decision", candidate_id=candidate_id,
                         error=str(e)[:500])
            outcome.skip("decision", "ERR_CANDIDATE_PERSIST", str(e)[:500])
            outcome.geocoded = False
            outcome.venue_id = None
            return

        outcome.decision = decision.decision
        candidate_decisions_total.labels(decision=decision.decision.value, via=decision.via.value).inc()
        logger.info("candidate_decided", candidate_id=candidate_id,
                    decision=decision.decision.value, score=assessment.score,
                    geocoded=outcome.geocoded)

        if not decision.publishes:
            return

        try:
            async with session.begin_nested():
                promotion = await self.promoter.promote(session, candidate, via=DecisionSource.AUTO)
        except STORE_UNAVAILABLE:
            raise
        except PromotionFailure as e:
            logger.warning("promotion_failed", candidate_id=candidate_id,
                           error_code=e.error_code, error=e.message)
            outcome.recovered("promotion", e.error_code, e.message)
            events_promoted_total.labels(outcome="failed").inc()
            return
        except SQLAlchemyError as e:
            logger.error("promotion_failed", candidate_id=candidate_id, error=str(e)[:500])
            outcome.recovered("promotion", "ERR_PROMOTION", str(e)[:500])
            events_promoted_total.labels(outcome="failed").inc()
            return

        outcome.event_id = promotion.event_id
        outcome.promotion = promotion.outcome

    # ─── Status Helpers ───────────────────────────────────────

    async def _load_submission(self, session: AsyncSession, submission_id: uuid.UUID) -> Submission:
        result = await session.execute(
            select(Submission).where(Submission.submission_id == submission_id)
        )
        submission = result.scalar_one_or_none()
        if submission is None:
            raise NotFound(f"Submission not found: {submission_id}")
        return submission

    async def _transition(
        self, session: AsyncSession, submission_id: uuid.UUID, target: SubmissionStatus
    ) -> None:
        """Validated lifecycle move."""
        result = await session.execute(
            select(Submission.status).where(Submission.submission_id == submission_id)
        )
        current = SubmissionStatus(result.scalar_one())
        if not current.can_transition_to(target):
            raise InvalidTransition(f"{current.value} -> {target.value} is not allowed")
        await self._set_status(session, submission_id, target)
        logger.debug("submission_status", status=target.value)

    async def _set_status(
        self, session: AsyncSession, submission_id: uuid.UUID, status: SubmissionStatus, **values
    ) -> None:
        await session.execute(
            update(Submission)
            .where(Submission.submission_id == submission_id)
            .values(status=status.value, **values)
        )
        await session.flush()

    async def _fail_submission(
        self, session: AsyncSession, submission_id: uuid.UUID, error_code: str, error_message: str
    ) -> None:
        """Mark the submission as failed. Earlier committed stages stay."""
        submissions_failed_total.labels(error_code=error_code).inc()
        try:
            await session.rollback()
            await self._set_status(
                session,
                submission_id,
                SubmissionStatus.ERROR,
                error_code=error_code,
                error_message=error_message[:500],
            )
            await session.commit()
        except SQLAlchemyError as e:
            logger.error("fail_submission_failed", error=str(e)[:200])
        logger.error("submission_failed", error_code=error_code, error=error_message[:500])
