"""
/v1/events endpoints: public map feed, event detail and calendar export.
"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from flyerboard.config import Settings
from flyerboard.dependencies import get_app_settings, get_db
from flyerboard.publishing.calendar import event_to_ics
from flyerboard.publishing.events import get_event_detail, list_event_features, load_event
from flyerboard.schemas.events import (
    BoundingBox,
    EventDetail,
    EventFeatureCollection,
    EventFilters,
)

router = APIRouter(prefix="/v1/events", tags=["events"])


@router.get("", response_model=EventFeatureCollection)
async def list_events(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    q: Optional[str] = Query(None, max_length=200, description="Keyword in title or description"),
    bbox: Optional[str] = Query(None, description="west,south,east,north"),
    include_past: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_db),
):
    """Approved events as a GeoJSON FeatureCollection."""
    box = None
    if bbox:
        try:
            box = BoundingBox.parse(bbox)
        except (ValueError, ValidationError) as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid bbox: {e}",
            )

    filters = EventFilters(
        start_date=start_date,
        end_date=end_date,
        keyword=q,
        bbox=box,
        include_past=include_past,
        limit=limit,
        offset=offset,
    )
    return await list_event_features(session, filters)


@router.get("/{event_id}", response_model=EventDetail)
async def event_detail(
    event_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
):
    return await get_event_detail(session, event_id)


@router.get("/{event_id}/ics")
async def event_calendar(
    event_id: uuid.UUID,
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """Single-event iCalendar download."""
    event, venue = await load_event(session, event_id)
    return Response(
        content=event_to_ics(event, venue, settings),
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="event-{event_id}.ics"'},
    )
