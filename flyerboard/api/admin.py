"""
/v1/admin endpoints: review queue, manual decisions, unpublish and merge.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.dependencies import get_db, get_promoter, verify_api_key
from flyerboard.pipeline.promotion import CandidatePromoter
from flyerboard.publishing.events import get_event_detail, unpublish_event
from flyerboard.review.queue import (
    apply_manual_decision,
    get_pending_reviews,
    get_review_queue_stats,
    merge_duplicate_events,
)
from flyerboard.schemas.events import EventDetail, UnpublishRequest, UnpublishResponse
from flyerboard.schemas.review import (
    ManualDecisionRequest,
    ManualDecisionResponse,
    MergeRequest,
    MergeResponse,
    ReviewItem,
    ReviewQueueStats,
)

router = APIRouter(prefix="/v1/admin", tags=["admin"], dependencies=[Depends(verify_api_key)])


@router.get("/review", response_model=list[ReviewItem])
async def list_pending_reviews(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
):
    return await get_pending_reviews(session, limit=limit, offset=offset)


@router.get("/review/stats", response_model=ReviewQueueStats)
async def review_stats(session: AsyncSession = Depends(get_db)):
    return await get_review_queue_stats(session)


@router.post("/candidates/{candidate_id}/decision", response_model=ManualDecisionResponse)
async def decide_candidate(
    candidate_id: uuid.UUID,
    body: ManualDecisionRequest,
    session: AsyncSession = Depends(get_db),
    promoter: CandidatePromoter = Depends(get_promoter),
):
    """Operator publish/block override for one candidate."""
    return await apply_manual_decision(session, promoter, candidate_id, body.decision, body.reason)


@router.get("/events/{event_id}", response_model=EventDetail)
async def admin_event_detail(
    event_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
):
    """Event detail regardless of moderation state."""
    return await get_event_detail(session, event_id, include_unpublished=True)


@router.post("/events/{event_id}/unpublish", response_model=UnpublishResponse)
async def unpublish(
    event_id: uuid.UUID,
    body: UnpublishRequest,
    session: AsyncSession = Depends(get_db),
):
    event = await unpublish_event(session, event_id, body.reason, body.note)
    return UnpublishResponse(
        event_id=str(event.event_id),
        moderation_state=event.moderation_state,
        reason=body.reason,
    )


@router.post("/events/merge", response_model=MergeResponse)
async def merge_events(
    body: MergeRequest,
    session: AsyncSession = Depends(get_db),
):
    link = await merge_duplicate_events(
        session,
        body.primary_event_id,
        body.duplicate_event_id,
        body.reason,
        body.similarity_score,
    )
    return MergeResponse(
        link_id=str(link.link_id),
        primary_event_id=str(link.primary_event_id),
        duplicate_event_id=str(link.duplicate_event_id),
        similarity_score=link.similarity_score,
        merge_reason=link.merge_reason,
    )
