"""
Pydantic response schemas for the submission endpoints.
Serialized with camelCase keys for the upload widget.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from flyerboard.schemas.extraction import Point


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FlyerView(CamelModel):
    flyer_id: str
    region_id: str
    detection_confidence: float
    polygon: list[Point] = []


class CandidateView(CamelModel):
    candidate_id: str
    decision: Optional[str] = None
    score: Optional[float] = None
    event_id: Optional[str] = None
    reason: Optional[str] = None


class SubmissionStatusView(CamelModel):
    """Progress of one submission, polled by the client."""
    submission_id: str
    status: str
    step: str
    flyers: list[FlyerView] = []
    candidates: list[CandidateView] = []
    error: Optional[str] = None
