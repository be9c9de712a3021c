"""
Canonical event identity and operator-declared duplicates.

Two candidates describe the same public event when their canonical keys are
equal: same title (case and surrounding whitespace ignored) on the same
calendar day. Exact-key matching is the only automatic dedup; fuzzy
duplicates are linked by an operator through record_dedupe_link.
"""

import uuid
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.models.tables import DedupeLink, Event

logger = structlog.get_logger(__name__)


def normalize_title(title: str) -> str:
    return title.strip().lower()


def canonical_key(title: str, start_ts: datetime) -> str:
    """``normalize(title) + "_" + YYYY-MM-DD``; time of day is ignored."""
    return f"{normalize_title(title)}_{start_ts.date().isoformat()}"


async def find_event_by_key(session: AsyncSession, key: str) -> Optional[Event]:
    result = await session.execute(select(Event).where(Event.canonical_key == key))
    return result.scalar_one_or_none()


async def record_dedupe_link(
    session: AsyncSession,
    primary_event_id: uuid.UUID,
    duplicate_event_id: uuid.UUID,
    merge_reason: str,
    similarity_score: Optional[float] = None,
) -> DedupeLink:
    """Link ``duplicate`` to ``primary``. Re-linking the same pair returns the existing row."""
    if primary_event_id == duplicate_event_id:
        raise ValueError("an event cannot be a duplicate of itself")

    result = await session.execute(
        select(DedupeLink).where(
            DedupeLink.primary_event_id == primary_event_id,
            DedupeLink.duplicate_event_id == duplicate_event_id,
        )
    )
    link = result.scalar_one_or_none()
    if link is not None:
        return link

    link = DedupeLink(
        primary_event_id=primary_event_id,
        duplicate_event_id=duplicate_event_id,
        similarity_score=similarity_score,
        merge_reason=merge_reason,
    )
    session.add(link)
    await session.flush()

    logger.info(
        "dedupe_link_recorded",
        primary_event_id=str(primary_event_id),
        duplicate_event_id=str(duplicate_event_id),
        reason=merge_reason,
    )
    return link
