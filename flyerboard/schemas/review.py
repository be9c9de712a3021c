"""
Pydantic schemas for the operator review endpoints.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from flyerboard.models.enums import Decision


class ReviewItem(BaseModel):
    candidate_id: str
    submission_id: str
    flyer_id: str
    fields: dict
    composite_score: Optional[float] = None
    decision: Optional[str] = None
    decision_reason: Optional[str] = None
    source_excerpt: Optional[str] = None
    created_at: datetime


class ReviewQueueStats(BaseModel):
    needs_review: int = 0
    published: int = 0
    blocked: int = 0
    unprocessed: int = 0
    total: int = 0
    recent_24h: int = 0


class ManualDecisionRequest(BaseModel):
    decision: Decision
    reason: Optional[str] = Field(default=None, max_length=500)


class ManualDecisionResponse(BaseModel):
    candidate_id: str
    decision: str
    reason: Optional[str] = None
    event_id: Optional[str] = None


class MergeRequest(BaseModel):
    primary_event_id: uuid.UUID
    duplicate_event_id: uuid.UUID
    reason: str = Field(min_length=1, max_length=500)
    similarity_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class MergeResponse(BaseModel):
    link_id: str
    primary_event_id: str
    duplicate_event_id: str
    similarity_score: Optional[float] = None
    merge_reason: str
