"""
Pydantic schemas for the public event feed, detail and calendar export.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from flyerboard.models.enums import UnpublishReason


# ── Query Schemas ────────────────────────────────────────────

class BoundingBox(BaseModel):
    west: float = Field(ge=-180.0, le=180.0)
    south: float = Field(ge=-90.0, le=90.0)
    east: float = Field(ge=-180.0, le=180.0)
    north: float = Field(ge=-90.0, le=90.0)

    @model_validator(mode="after")
    def check_order(self) -> "BoundingBox":
        if self.south > self.north:
            raise ValueError("bbox south must not exceed north")
        if self.west > self.east:
            raise ValueError("bbox west must not exceed east")
        return self

    @classmethod
    def parse(cls, raw: str) -> "BoundingBox":
        """``"w,s,e,n"`` -> BoundingBox. Raises ValueError on malformed input."""
        parts = [p.strip() for p in raw.split(",")]
        if len(parts) != 4:
            raise ValueError("bbox must be 'west,south,east,north'")
        west, south, east, north = (float(p) for p in parts)
        return cls(west=west, south=south, east=east, north=north)


class EventFilters(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    keyword: Optional[str] = None
    bbox: Optional[BoundingBox] = None
    include_past: bool = False
    limit: int = Field(default=100, ge=1, le=500)
    offset: int = Field(default=0, ge=0)


# ── Feed Schemas ─────────────────────────────────────────────

class PointGeometry(BaseModel):
    type: Literal["Point"] = "Point"
    coordinates: tuple[float, float]  # [lng, lat]


class EventProperties(BaseModel):
    title: str
    start_ts: datetime
    end_ts: Optional[datetime] = None
    url: Optional[str] = None
    price: Optional[str] = None
    description: Optional[str] = None
    organizer: Optional[str] = None
    source: str
    venue_name: Optional[str] = None
    address: Optional[str] = None


class EventFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    id: str
    geometry: Optional[PointGeometry] = None
    properties: EventProperties


class EventFeatureCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[EventFeature] = []


# ── Detail Schemas ───────────────────────────────────────────

class VenueDetail(BaseModel):
    venue_id: str
    name: str
    address_line: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    geocode_confidence: Optional[float] = None


class EventDetail(BaseModel):
    event_id: str
    canonical_key: str
    title: str
    start_ts: datetime
    end_ts: Optional[datetime] = None
    description: Optional[str] = None
    url: Optional[str] = None
    price: Optional[str] = None
    organizer: Optional[str] = None
    source: str
    moderation_state: str
    quality_score: Optional[float] = None
    published_via: Optional[str] = None
    venue: Optional[VenueDetail] = None
    created_at: datetime
    updated_at: datetime


class CalendarRecord(BaseModel):
    """Everything a calendar export needs for one event."""
    uid: str
    start: datetime
    end: datetime
    summary: str
    description: Optional[str] = None
    location: Optional[str] = None
    url: Optional[str] = None


# ── Action Schemas ───────────────────────────────────────────

class UnpublishRequest(BaseModel):
    reason: UnpublishReason
    note: Optional[str] = None


class UnpublishResponse(BaseModel):
    event_id: str
    moderation_state: str
    reason: UnpublishReason
