"""
Extraction contract: the structured output every extraction engine returns.

This is the boundary between the vision capability and the pipeline.
Engines must return a validated FlyerDetectionResult or raise EngineError.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class Point(BaseModel):
    """Pixel coordinate, origin top-left."""
    x: float
    y: float


class ExtractedEvent(BaseModel):
    """One event proposal read from a flyer."""
    event_id: str = Field(min_length=1)
    fields: dict[str, Any] = {}
    confidences: dict[str, float] = {}
    source_excerpt: Optional[str] = None

    @field_validator("confidences")
    @classmethod
    def confidences_in_range(cls, v: dict[str, float]) -> dict[str, float]:
        for key, value in v.items():
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"confidence {key}={value} outside [0, 1]")
        return v

    def text_field(self, *names: str) -> Optional[str]:
        """First non-blank string value among ``names``."""
        return first_text(self.fields, *names)


class DetectedFlyer(BaseModel):
    """One flyer region detected on the board."""
    region_id: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)
    polygon: list[Point] = Field(min_length=4, max_length=4)
    rotation_deg: Optional[float] = None
    events: list[ExtractedEvent] = []
    notes: Optional[str] = None


class FlyerDetectionResult(BaseModel):
    """Full extraction output for one bulletin-board photo."""
    flyers_detected: list[DetectedFlyer] = []
    total_regions: int = 0
    image_quality: Optional[str] = None
    processing_notes: Optional[str] = None

    @property
    def candidate_count(self) -> int:
        return sum(len(f.events) for f in self.flyers_detected)


def first_text(fields: dict, *names: str) -> Optional[str]:
    """First non-blank string among ``fields[name]`` for ``names`` in order."""
    for name in names:
        value = fields.get(name)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None
