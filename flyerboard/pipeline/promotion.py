"""
Candidate promotion: a published EventCandidate becomes a public Event.

Promotion is idempotent per canonical key:
  - no event with the key       -> insert (inside a savepoint)
  - event exists, not approved  -> upgrade to approved in place
  - event exists and approved   -> no-op
A unique-key violation on insert means another writer won the race; it
falls through to the lookup/upgrade path instead of failing.
"""

import uuid
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Optional

import structlog
from dateutil.relativedelta import relativedelta
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.config import Settings
from flyerboard.models.enums import DecisionSource, ModerationState
from flyerboard.models.tables import Event, EventCandidate
from flyerboard.observability.metrics import events_promoted_total
from flyerboard.pipeline.canonical import canonical_key, find_event_by_key
from flyerboard.pipeline.date_parser import region_tz, resolve_end_time, resolve_start_time
from flyerboard.pipeline.errors import MissingTitle
from flyerboard.pipeline.venues import find_or_create_venue
from flyerboard.schemas.extraction import first_text

logger = structlog.get_logger(__name__)


class PromotionOutcome(str, Enum):
    CREATED = "created"
    UPGRADED = "upgraded"
    UNCHANGED = "unchanged"


class PromotionResult(BaseModel):
    event_id: uuid.UUID
    canonical_key: str
    outcome: PromotionOutcome
    venue_id: Optional[uuid.UUID] = None


class CandidatePromoter:
    """Turns published candidates into Events. One instance per process."""

    def __init__(self, zone: tzinfo):
        self.zone = zone

    @classmethod
    def from_settings(cls, settings: Settings) -> "CandidatePromoter":
        return cls(zone=region_tz(settings.REGION_TZ))

    async def promote(
        self,
        session: AsyncSession,
        candidate: EventCandidate,
        via: DecisionSource = DecisionSource.AUTO,
        now: Optional[datetime] = None,
    ) -> PromotionResult:
        """
        Promote ``candidate``. Raises MissingTitle; other failures propagate
        from the session. The candidate is linked to the resulting Event.
        """
        fields = candidate.fields or {}
        title = first_text(fields, "title")
        if not title:
            raise MissingTitle(f"candidate {candidate.candidate_id} has no title")

        now = now or datetime.now(timezone.utc)
        start = resolve_start_time(first_text(fields, "date", "date_time", "start_time"), now, self.zone)
        end_ts = resolve_end_time(first_text(fields, "end_time", "end_date"), self.zone)
        if end_ts is not None and start.shifted_year:
            end_ts = end_ts + relativedelta(years=1)
        if end_ts is not None and end_ts <= start.start_ts:
            end_ts = None

        key = canonical_key(title, start.start_ts)

        existing = await find_event_by_key(session, key)
        if existing is not None:
            result = await self._apply_existing(session, existing, via)
        else:
            venue_id = None
            venue_name = first_text(fields, "venue")
            if venue_name:
                venue = await find_or_create_venue(
                    session, venue_name, first_text(fields, "address", "location")
                )
                venue_id = venue.venue_id

            # Key uses the regional calendar day; storage is UTC
            event = Event(
                canonical_key=key,
                title=title,
                start_ts=start.start_ts.astimezone(timezone.utc),
                end_ts=end_ts.astimezone(timezone.utc) if end_ts else None,
                venue_id=venue_id,
                description=first_text(fields, "description"),
                url=first_text(fields, "url"),
                price=first_text(fields, "price"),
                organizer=first_text(fields, "organizer"),
                moderation_state=ModerationState.APPROVED.value,
                quality_score=candidate.composite_score,
                published_via=via.value,
            )
            try:
                async with session.begin_nested():
                    session.add(event)
                    await session.flush()
            except IntegrityError:
                logger.info("promotion_key_conflict", canonical_key=key,
                            candidate_id=str(candidate.candidate_id))
                existing = await find_event_by_key(session, key)
                if existing is None:
                    raise
                result = await self._apply_existing(session, existing, via)
            else:
                result = PromotionResult(
                    event_id=event.event_id,
                    canonical_key=key,
                    outcome=PromotionOutcome.CREATED,
                    venue_id=venue_id,
                )

        candidate.event_id = result.event_id
        await session.flush()

        events_promoted_total.labels(outcome=result.outcome.value).inc()
        logger.info(
            "candidate_promoted",
            candidate_id=str(candidate.candidate_id),
            event_id=str(result.event_id),
            canonical_key=key,
            outcome=result.outcome.value,
            via=via.value,
            start_format=start.format_detected,
            start_fallback=start.is_fallback,
        )
        return result

    async def _apply_existing(
        self, session: AsyncSession, event: Event, via: DecisionSource
    ) -> PromotionResult:
        if event.moderation_state == ModerationState.APPROVED.value:
            outcome = PromotionOutcome.UNCHANGED
        else:
            event.moderation_state = ModerationState.APPROVED.value
            event.published_via = via.value
            await session.flush()
            outcome = PromotionOutcome.UPGRADED

        return PromotionResult(
            event_id=event.event_id,
            canonical_key=event.canonical_key,
            outcome=outcome,
            venue_id=event.venue_id,
        )
