"""
Moderation stage: extracted candidate fields -> QualityAssessment.

Two assessors share one interface:
  - LLMQualityAssessor asks the classifier for six quality factors plus an
    appropriateness verdict, and degrades to the heuristic on any failure.
  - HeuristicQualityAssessor scores from field presence alone. It is the
    only assessor when no classifier credential is configured.

Neither assessor touches the database.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from typing import Optional

import structlog
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from flyerboard.models.enums import QualitySource
from flyerboard.observability.metrics import (
    capability_fallbacks_total,
    external_api_latency_seconds,
)
from flyerboard.pipeline.confidence_scorer import score_quality
from flyerboard.schemas.extraction import first_text
from flyerboard.schemas.moderation import ClassifierVerdict, QualityAssessment, QualityFactors

logger = structlog.get_logger(__name__)


MODERATION_PROMPT = """
Analyze this extracted event data for quality and appropriateness.

Event Data:
{event_json}

Evaluate the following factors and provide scores 0.0-1.0:

1. Event Details Completeness (0.0 = missing key info, 1.0 = all details present)
2. Date/Time Confidence (0.0 = unclear/missing, 1.0 = clear specific datetime)
3. Venue Confidence (0.0 = vague location, 1.0 = specific address/venue)
4. Contact Info Present (0.0 = no contact info, 1.0 = clear contact details)
5. Professional Looking (0.0 = low quality/spam-like, 1.0 = professional/legitimate)
6. Text Readability (0.0 = hard to read/messy, 1.0 = clear and well-formatted)

Also determine:
- Is this appropriate for a public event calendar? (true/false)
- If inappropriate, what's the reason?

Respond in this exact JSON format:
{{
  "quality_factors": {{
    "event_details_complete": 0.0-1.0,
    "datetime_confidence": 0.0-1.0,
    "venue_confidence": 0.0-1.0,
    "contact_info_present": 0.0-1.0,
    "professional_looking": 0.0-1.0,
    "text_readability": 0.0-1.0
  }},
  "is_appropriate": true/false,
  "moderation_reason": "reason if inappropriate, null otherwise"
}}"""

MODERATION_MAX_TOKENS = 500


class QualityAssessor(ABC):
    """Turns one candidate's extracted fields into a QualityAssessment."""

    @property
    @abstractmethod
    def assessor_name(self) -> str:
        ...

    @abstractmethod
    async def assess(self, fields: dict) -> QualityAssessment:
        """Must always return an assessment; failures degrade, never raise."""
        ...


class HeuristicQualityAssessor(QualityAssessor):
    """Presence-based scoring used when the classifier is absent or fails."""

    BASE_SCORE = 0.75
    TITLE_BONUS = 0.10
    VENUE_BONUS = 0.05
    DATE_BONUS = 0.05

    # Reported for display only; the score does not derive from these
    NOMINAL_FACTORS = QualityFactors(
        completeness=0.8,
        datetime=0.7,
        venue=0.7,
        contact=0.5,
        professionalism=0.8,
        readability=0.8,
    )

    @property
    def assessor_name(self) -> str:
        return "heuristic"

    def score(self, fields: dict) -> float:
        score = self.BASE_SCORE
        if first_text(fields, "title"):
            score += self.TITLE_BONUS
        if first_text(fields, "venue"):
            score += self.VENUE_BONUS
        if first_text(fields, "date_time", "date"):
            score += self.DATE_BONUS
        return round(min(score, 1.0), 4)

    async def assess(self, fields: dict) -> QualityAssessment:
        return QualityAssessment(
            factors=self.NOMINAL_FACTORS,
            appropriate=True,
            reason=None,
            score=self.score(fields),
            source=QualitySource.HEURISTIC,
        )


class LLMQualityAssessor(QualityAssessor):
    """Classifier-backed assessor. Any failure falls back to ``fallback``."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        timeout_seconds: float,
        fallback: Optional[QualityAssessor] = None,
    ):
        self.client = client
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.fallback = fallback or HeuristicQualityAssessor()

    @property
    def assessor_name(self) -> str:
        return "openai"

    async def assess(self, fields: dict) -> QualityAssessment:
        prompt = MODERATION_PROMPT.format(
            event_json=json.dumps(fields, default=str, sort_keys=True)
        )

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    response_format={"type": "json_object"},
                    max_tokens=MODERATION_MAX_TOKENS,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return await self._degrade(fields, "timeout")
        except OpenAIError as e:
            return await self._degrade(fields, "capability_error", error=str(e)[:200])
        finally:
            external_api_latency_seconds.labels(
                capability="moderation", provider=self.assessor_name
            ).observe(time.monotonic() - started)

        content = response.choices[0].message.content if response.choices else None
        if not content:
            return await self._degrade(fields, "empty_response")

        try:
            verdict = ClassifierVerdict.model_validate_json(content)
        except ValidationError as e:
            return await self._degrade(fields, "unparsable", error=str(e)[:200])

        reason = verdict.moderation_reason if not verdict.is_appropriate else None
        return QualityAssessment(
            factors=verdict.quality_factors,
            appropriate=verdict.is_appropriate,
            reason=reason,
            score=score_quality(verdict.quality_factors),
            source=QualitySource.CLASSIFIER,
        )

    async def _degrade(self, fields: dict, reason: str, **context) -> QualityAssessment:
        logger.warning(
            "moderation_fallback",
            reason=reason,
            model=self.model,
            fallback=self.fallback.assessor_name,
            **context,
        )
        capability_fallbacks_total.labels(capability="moderation", reason=reason).inc()
        return await self.fallback.assess(fields)
