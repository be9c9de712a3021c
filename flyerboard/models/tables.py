"""
SQLAlchemy ORM models.
Generic column types so the same metadata runs on PostgreSQL and SQLite.
Values supplied by the vision model or the geocoder are Text; bounded String
columns only hold codes this service generates.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from flyerboard.models.database import Base
from flyerboard.models.enums import ModerationState, SubmissionStatus

JSONType = JSON().with_variant(JSONB(), "postgresql")


# ────────────────────────────────────────────────────────────
# SUBMISSIONS
# ────────────────────────────────────────────────────────────
class Submission(Base):
    __tablename__ = "submissions"

    submission_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    image_uri: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[str] = mapped_column(String(32), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    image_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SubmissionStatus.UPLOADED.value
    )
    image_quality: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processing_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_submissions_status", "status"),
        Index("idx_submissions_hash", "image_hash"),
    )


# ────────────────────────────────────────────────────────────
# FLYER REGIONS
# ────────────────────────────────────────────────────────────
class FlyerRegion(Base):
    __tablename__ = "flyer_regions"

    flyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    submission_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("submissions.submission_id", ondelete="CASCADE"), nullable=False
    )
    region_id: Mapped[str] = mapped_column(Text, nullable=False)
    polygon: Mapped[list] = mapped_column(JSONType, nullable=False)
    rotation_deg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    detection_confidence: Mapped[float] = mapped_column(Float, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("submission_id", "region_id", name="uq_flyer_region"),
    )


# ────────────────────────────────────────────────────────────
# EVENT CANDIDATES
# ────────────────────────────────────────────────────────────
class EventCandidate(Base):
    __tablename__ = "event_candidates"

    candidate_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    flyer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("flyer_regions.flyer_id", ondelete="CASCADE"), nullable=False
    )
    # Identifier assigned by the extraction output, unique within a flyer
    extraction_event_id: Mapped[str] = mapped_column(Text, nullable=False)
    fields: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    confidences: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    source_excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    geocode: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    quality_factors: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    quality_source: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    appropriate: Mapped[Optional[bool]] = mapped_column(nullable=True)
    moderation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    composite_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    decision: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    decision_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    decided_via: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    event_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("events.event_id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("flyer_id", "extraction_event_id", name="uq_candidate_per_flyer"),
        Index("idx_candidates_decision", "decision"),
    )


# ────────────────────────────────────────────────────────────
# VENUES
# ────────────────────────────────────────────────────────────
class Venue(Base):
    __tablename__ = "venues"

    venue_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address_line: Mapped[str] = mapped_column(Text, nullable=False, default="")
    city: Mapped[str] = mapped_column(Text, nullable=False, default="")
    state: Mapped[str] = mapped_column(Text, nullable=False, default="")
    postal_code: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    country: Mapped[str] = mapped_column(Text, nullable=False, default="US")
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    geocode_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    geocode_data: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("name", "address_line", "city", "state", name="uq_venue_identity"),
        Index("idx_venues_name", "name"),
    )


# ────────────────────────────────────────────────────────────
# EVENTS
# ────────────────────────────────────────────────────────────
class Event(Base):
    __tablename__ = "events"

    event_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    canonical_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    start_ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_ts: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    venue_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("venues.venue_id", ondelete="SET NULL"), nullable=True
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    organizer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[str] = mapped_column(String(16), nullable=False, default="flyer")
    moderation_state: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ModerationState.PENDING.value
    )
    quality_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    published_via: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_events_state_start", "moderation_state", "start_ts"),
    )


# ────────────────────────────────────────────────────────────
# DEDUPE LINKS
# ────────────────────────────────────────────────────────────
class DedupeLink(Base):
    __tablename__ = "dedupe_links"

    link_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    primary_event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False
    )
    duplicate_event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False
    )
    similarity_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    merge_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("primary_event_id", "duplicate_event_id", name="uq_dedupe_pair"),
    )


# ────────────────────────────────────────────────────────────
# AUDIT LOG
# ────────────────────────────────────────────────────────────
class AuditLog(Base):
    __tablename__ = "audit_logs"

    audit_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    changes: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )
