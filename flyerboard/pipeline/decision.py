"""
Auto-publish decision engine.

Rules, first match wins:
1. Not appropriate                      -> blocked (classifier's reason)
2. composite score >= publish threshold -> published (promotion follows)
3. otherwise                            -> needs_review

Geocoding never gates the decision. It only controls whether a Venue is
recorded (geocode confidence >= geo threshold).
"""

from typing import Optional

from pydantic import BaseModel

from flyerboard.config import Settings
from flyerboard.models.enums import Decision, DecisionSource
from flyerboard.schemas.geocoding import GeocodeResult
from flyerboard.schemas.moderation import QualityAssessment


AUTO_PUBLISH_REASON = "auto-published (high quality score)"
REVIEW_REASON = "requires manual review (low quality score)"
AUTO_PUBLISH_DISABLED_REASON = "requires manual review (auto-publish disabled)"


class DecisionOutcome(BaseModel):
    decision: Decision
    reason: Optional[str] = None
    via: DecisionSource = DecisionSource.AUTO

    @property
    def publishes(self) -> bool:
        return self.decision == Decision.PUBLISHED


class DecisionEngine:
    """Stateless rule evaluation; thresholds are fixed at construction."""

    def __init__(
        self,
        auto_publish_threshold: float = 0.80,
        geo_confidence_threshold: float = 0.75,
        auto_publish_enabled: bool = True,
    ):
        self.auto_publish_threshold = auto_publish_threshold
        self.geo_confidence_threshold = geo_confidence_threshold
        self.auto_publish_enabled = auto_publish_enabled

    @classmethod
    def from_settings(cls, settings: Settings) -> "DecisionEngine":
        return cls(
            auto_publish_threshold=settings.AUTO_PUBLISH_THRESHOLD,
            geo_confidence_threshold=settings.GEO_CONF_THRESHOLD,
            auto_publish_enabled=settings.AUTO_PUBLISH_ENABLED,
        )

    def decide(self, assessment: QualityAssessment) -> DecisionOutcome:
        if not assessment.appropriate:
            return DecisionOutcome(decision=Decision.BLOCKED, reason=assessment.reason)

        if assessment.score >= self.auto_publish_threshold:
            if not self.auto_publish_enabled:
                return DecisionOutcome(
                    decision=Decision.NEEDS_REVIEW, reason=AUTO_PUBLISH_DISABLED_REASON
                )
            return DecisionOutcome(decision=Decision.PUBLISHED, reason=AUTO_PUBLISH_REASON)

        return DecisionOutcome(decision=Decision.NEEDS_REVIEW, reason=REVIEW_REASON)

    def records_venue(self, geocode: Optional[GeocodeResult]) -> bool:
        return geocode is not None and geocode.confidence >= self.geo_confidence_threshold

    @staticmethod
    def manual(decision: Decision, reason: Optional[str]) -> DecisionOutcome:
        """Operator override; bypasses every rule."""
        return DecisionOutcome(decision=decision, reason=reason, via=DecisionSource.MANUAL)
