"""
Operator review queue.

Candidates the decision engine could not settle (needs_review) wait here
until an operator publishes or blocks them. Operators can also declare two
public events duplicates of each other.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.models.enums import AuditAction, Decision, DecisionSource, ModerationState
from flyerboard.models.tables import DedupeLink, EventCandidate, FlyerRegion
from flyerboard.observability.metrics import candidate_decisions_total, review_queue_depth
from flyerboard.pipeline.canonical import record_dedupe_link
from flyerboard.pipeline.decision import DecisionEngine
from flyerboard.pipeline.errors import InputValidationError, NotFound
from flyerboard.pipeline.promotion import CandidatePromoter
from flyerboard.publishing.events import load_event
from flyerboard.review.audit import record_audit
from flyerboard.schemas.review import ManualDecisionResponse, ReviewItem, ReviewQueueStats

logger = structlog.get_logger(__name__)


async def get_pending_reviews(
    session: AsyncSession,
    limit: int = 50,
    offset: int = 0,
) -> list[ReviewItem]:
    """Candidates awaiting an operator, oldest first."""
    result = await session.execute(
        select(EventCandidate, FlyerRegion.submission_id)
        .join(FlyerRegion, EventCandidate.flyer_id == FlyerRegion.flyer_id)
        .where(EventCandidate.decision == Decision.NEEDS_REVIEW.value)
        .order_by(EventCandidate.created_at, EventCandidate.candidate_id)
        .offset(offset)
        .limit(limit)
    )
    return [
        ReviewItem(
            candidate_id=str(candidate.candidate_id),
            submission_id=str(submission_id),
            flyer_id=str(candidate.flyer_id),
            fields=candidate.fields or {},
            composite_score=candidate.composite_score,
            decision=candidate.decision,
            decision_reason=candidate.decision_reason,
            source_excerpt=candidate.source_excerpt,
            created_at=candidate.created_at,
        )
        for candidate, submission_id in result.all()
    ]


async def get_review_queue_stats(
    session: AsyncSession, now: Optional[datetime] = None
) -> ReviewQueueStats:
    now = now or datetime.now(timezone.utc)

    result = await session.execute(
        select(EventCandidate.decision, func.count(EventCandidate.candidate_id))
        .group_by(EventCandidate.decision)
    )
    counts = {row[0]: row[1] for row in result.all()}

    recent = await session.execute(
        select(func.count(EventCandidate.candidate_id)).where(
            EventCandidate.created_at >= now - timedelta(hours=24)
        )
    )

    stats = ReviewQueueStats(
        needs_review=counts.get(Decision.NEEDS_REVIEW.value, 0),
        published=counts.get(Decision.PUBLISHED.value, 0),
        blocked=counts.get(Decision.BLOCKED.value, 0),
        unprocessed=counts.get(None, 0),
        total=sum(counts.values()),
        recent_24h=recent.scalar_one(),
    )
    review_queue_depth.set(stats.needs_review)
    return stats


async def apply_manual_decision(
    session: AsyncSession,
    promoter: CandidatePromoter,
    candidate_id: uuid.UUID,
    decision: Decision,
    reason: Optional[str] = None,
) -> ManualDecisionResponse:
    """
    Operator override for one candidate. Publishing promotes immediately;
    a PromotionFailure leaves the candidate untouched and propagates.
    """
    candidate = await session.get(EventCandidate, candidate_id)
    if candidate is None:
        raise NotFound(f"Candidate not found: {candidate_id}")

    outcome = DecisionEngine.manual(decision, reason)
    previous = {"decision": candidate.decision, "reason": candidate.decision_reason,
                "decided_via": candidate.decided_via}

    async with session.begin_nested():
        candidate.decision = outcome.decision.value
        candidate.decision_reason = outcome.reason
        candidate.decided_via = outcome.via.value
        await session.flush()

        if outcome.publishes:
            await promoter.promote(session, candidate, via=DecisionSource.MANUAL)

    await record_audit(
        session,
        entity_type="candidate",
        entity_id=str(candidate.candidate_id),
        action=AuditAction.MANUAL_DECISION,
        changes={"before": previous, "after": {"decision": outcome.decision.value,
                                               "reason": outcome.reason}},
    )
    candidate_decisions_total.labels(decision=outcome.decision.value, via=outcome.via.value).inc()
    logger.info(
        "manual_decision_applied",
        candidate_id=str(candidate.candidate_id),
        decision=outcome.decision.value,
        previous_decision=previous["decision"],
        event_id=str(candidate.event_id) if candidate.event_id else None,
    )

    return ManualDecisionResponse(
        candidate_id=str(candidate.candidate_id),
        decision=outcome.decision.value,
        reason=outcome.reason,
        event_id=str(candidate.event_id) if candidate.event_id else None,
    )


async def merge_duplicate_events(
    session: AsyncSession,
    primary_event_id: uuid.UUID,
    duplicate_event_id: uuid.UUID,
    reason: str,
    similarity_score: Optional[float] = None,
) -> DedupeLink:
    """Link ``duplicate`` to ``primary`` and take the duplicate off the public feed."""
    if primary_event_id == duplicate_event_id:
        raise InputValidationError("An event cannot be merged into itself", "ERR_SELF_MERGE")

    await load_event(session, primary_event_id, include_unpublished=True)
    duplicate, _ = await load_event(session, duplicate_event_id, include_unpublished=True)

    previous_state = duplicate.moderation_state
    duplicate.moderation_state = ModerationState.BLOCKED.value
    link = await record_dedupe_link(
        session, primary_event_id, duplicate_event_id, reason, similarity_score
    )

    await record_audit(
        session,
        entity_type="event",
        entity_id=str(duplicate_event_id),
        action=AuditAction.MERGE,
        changes={"primary_event_id": str(primary_event_id), "reason": reason,
                 "previous_state": previous_state},
    )
    logger.info("events_merged", primary_event_id=str(primary_event_id),
                duplicate_event_id=str(duplicate_event_id))
    return link
