"""
Quality assessment value objects produced by the moderation stage.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from flyerboard.models.enums import QualitySource


class QualityFactors(BaseModel):
    """Six quality factors, each in [0, 1].

    Accepts either the short names or the classifier's wire names
    (``event_details_complete``, ``datetime_confidence``, ...).
    """
    completeness: float = Field(
        ge=0.0, le=1.0, validation_alias=AliasChoices("completeness", "event_details_complete")
    )
    datetime: float = Field(
        ge=0.0, le=1.0, validation_alias=AliasChoices("datetime", "datetime_confidence")
    )
    venue: float = Field(
        ge=0.0, le=1.0, validation_alias=AliasChoices("venue", "venue_confidence")
    )
    contact: float = Field(
        ge=0.0, le=1.0, validation_alias=AliasChoices("contact", "contact_info_present")
    )
    professionalism: float = Field(
        ge=0.0, le=1.0, validation_alias=AliasChoices("professionalism", "professional_looking")
    )
    readability: float = Field(
        ge=0.0, le=1.0, validation_alias=AliasChoices("readability", "text_readability")
    )


class ClassifierVerdict(BaseModel):
    """Structured output expected back from the moderation classifier."""
    quality_factors: QualityFactors
    is_appropriate: bool
    moderation_reason: Optional[str] = None


class QualityAssessment(BaseModel):
    """Moderation outcome for one candidate."""
    factors: QualityFactors
    appropriate: bool = True
    reason: Optional[str] = None
    score: float = Field(ge=0.0, le=1.0)
    source: QualitySource
