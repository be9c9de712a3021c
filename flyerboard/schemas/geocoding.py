"""
Geocoding value objects.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class AddressComponents(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class GeocodeResult(BaseModel):
    """Best match for one free-text address."""
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    formatted_address: str
    confidence: float = Field(ge=0.0, le=1.0)
    components: AddressComponents = AddressComponents()
    raw: dict[str, Any] = {}
