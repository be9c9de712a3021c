"""
Submission status view: lifecycle step plus per-flyer and per-candidate results.
"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.models.enums import SUBMISSION_STEPS, SubmissionStatus
from flyerboard.models.tables import EventCandidate, FlyerRegion, Submission
from flyerboard.pipeline.errors import NotFound
from flyerboard.schemas.submissions import CandidateView, FlyerView, SubmissionStatusView

GENERIC_FAILURE_MESSAGE = "Processing failed"


async def build_submission_status(
    session: AsyncSession, submission_id: uuid.UUID
) -> SubmissionStatusView:
    submission = await session.get(Submission, submission_id, populate_existing=True)
    if submission is None:
        raise NotFound(f"Submission not found: {submission_id}")

    status = SubmissionStatus(submission.status)

    flyer_rows = await session.execute(
        select(FlyerRegion)
        .where(FlyerRegion.submission_id == submission_id)
        .order_by(FlyerRegion.region_id)
    )
    flyers = list(flyer_rows.scalars().all())

    candidates = []
    if flyers:
        candidate_rows = await session.execute(
            select(EventCandidate)
            .join(FlyerRegion, EventCandidate.flyer_id == FlyerRegion.flyer_id)
            .where(FlyerRegion.submission_id == submission_id)
            .order_by(FlyerRegion.region_id, EventCandidate.extraction_event_id)
        )
        candidates = list(candidate_rows.scalars().all())

    error = None
    if status == SubmissionStatus.ERROR:
        error = submission.error_message or GENERIC_FAILURE_MESSAGE

    return SubmissionStatusView(
        submission_id=str(submission.submission_id),
        status=status.value,
        step=SUBMISSION_STEPS[status],
        flyers=[
            FlyerView(
                flyer_id=str(f.flyer_id),
                region_id=f.region_id,
                detection_confidence=f.detection_confidence,
                polygon=f.polygon or [],
            )
            for f in flyers
        ],
        candidates=[
            CandidateView(
                candidate_id=str(c.candidate_id),
                decision=c.decision,
                score=c.composite_score,
                event_id=str(c.event_id) if c.event_id else None,
                reason=c.decision_reason,
            )
            for c in candidates
        ],
        error=error,
    )
