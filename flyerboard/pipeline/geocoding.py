"""
Geocoding stage: free-text address -> GeocodeResult.

Geocoders:
  - MapboxGeocoder: Mapbox Places API over httpx.
  - StubGeocoder: deterministic offline resolver, used without a credential.

Both raise InvalidAddress for blank input. Mapbox additionally raises
NoResult and ProviderError.
"""

import re
import time
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from flyerboard.observability.metrics import external_api_latency_seconds
from flyerboard.pipeline.errors import GeocodingError, InvalidAddress, NoResult, ProviderError
from flyerboard.schemas.extraction import first_text
from flyerboard.schemas.geocoding import AddressComponents, GeocodeResult

logger = structlog.get_logger(__name__)


# ── Address composition ──────────────────────────────────────
STREET_SUFFIXES = {
    "st", "street", "ave", "avenue", "rd", "road", "blvd", "boulevard",
    "dr", "drive", "ln", "lane", "way", "pl", "place", "ct", "court",
    "hwy", "highway", "pkwy", "parkway", "sq", "square", "ter", "terrace",
}

_TOKEN_RE = re.compile(r"[A-Za-z]+")


def looks_like_street(name: str) -> bool:
    """True if ``name`` contains a street-suffix token ("Main St", "5th Avenue")."""
    return any(tok.lower() in STREET_SUFFIXES for tok in _TOKEN_RE.findall(name))


def build_venue_address(
    name: Optional[str] = None,
    address_line: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    postal_code: Optional[str] = None,
    country: Optional[str] = None,
    default_country: str = "US",
) -> str:
    """
    Compose a geocodable address from venue parts.

    Order: name (only when it reads like a street), address line,
    "city, state", postal code, country (only when not the default).
    Blank parts are skipped.
    """
    parts = []

    if name and looks_like_street(name):
        parts.append(name.strip())

    if address_line and address_line.strip():
        parts.append(address_line.strip())

    if city and city.strip():
        if state and state.strip():
            parts.append(f"{city.strip()}, {state.strip()}")
        else:
            parts.append(city.strip())

    if postal_code and postal_code.strip():
        parts.append(postal_code.strip())

    if country and country.strip() and country.strip() != default_country:
        parts.append(country.strip())

    return ", ".join(parts)


def candidate_address(fields: dict, default_country: str = "US") -> str:
    """Geocodable address for a candidate's extracted fields ("" if none)."""
    return build_venue_address(
        name=first_text(fields, "venue"),
        address_line=first_text(fields, "address", "location", "where"),
        default_country=default_country,
    )


def validate_coordinates(latitude: float, longitude: float) -> bool:
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


# ── Geocoders ────────────────────────────────────────────────
class Geocoder(ABC):

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def geocode(self, address: str) -> GeocodeResult:
        """Resolve ``address`` or raise a GeocodingError subclass."""
        ...

    async def aclose(self) -> None:
        return None


class StubGeocoder(Geocoder):
    """Offline resolver: fixed coordinates for a handful of known cities."""

    DEFAULT_POINT = (37.7749, -122.4194)  # San Francisco

    KNOWN_CITIES = [
        ("new york", (40.7128, -74.0060)),
        ("los angeles", (34.0522, -118.2437)),
        ("chicago", (41.8781, -87.6298)),
        ("seattle", (47.6062, -122.3321)),
        ("san francisco", (37.7749, -122.4194)),
    ]

    def __init__(self, default_country: str = "US"):
        self.default_country = default_country

    @property
    def provider_name(self) -> str:
        return "stub"

    async def geocode(self, address: str) -> GeocodeResult:
        query = (address or "").strip()
        if not query:
            raise InvalidAddress("empty address")

        lowered = query.lower()
        (lat, lng), city = self.DEFAULT_POINT, None
        for name, point in self.KNOWN_CITIES:
            if name in lowered:
                (lat, lng), city = point, name.title()
                break

        # Looks like a full street address
        confidence = 0.8 if "," in query and len(query.split()) > 3 else 0.7

        return GeocodeResult(
            latitude=lat,
            longitude=lng,
            formatted_address=query,
            confidence=confidence,
            components=AddressComponents(city=city, country=self.default_country),
            raw={"mock": True, "original_address": query},
        )


class MapboxGeocoder(Geocoder):
    """Mapbox Places forward geocoding, best match only."""

    COMPONENT_PREFIXES = {
        "place": "city",
        "region": "state",
        "postcode": "postal_code",
        "country": "country",
    }

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.mapbox.com/geocoding/v5/mapbox.places",
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def provider_name(self) -> str:
        return "mapbox"

    async def geocode(self, address: str) -> GeocodeResult:
        query = (address or "").strip()
        if not query:
            raise InvalidAddress("empty address")

        url = f"{self.base_url}/{quote(query, safe='')}.json"
        params = {"access_token": self.api_key, "limit": 1, "types": "address,poi"}

        started = time.monotonic()
        try:
            response = await self._client.get(url, params=params, timeout=self.timeout_seconds)
        except httpx.HTTPError as e:
            raise ProviderError(f"geocoding request failed: {type(e).__name__}: {e}") from e
        finally:
            external_api_latency_seconds.labels(
                capability="geocoding", provider=self.provider_name
            ).observe(time.monotonic() - started)

        if response.status_code != 200:
            raise ProviderError(f"geocoding API returned status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"failed to parse geocoding response: {e}") from e

        try:
            features = payload.get("features") or []
            if not features:
                raise NoResult(f"no geocoding results found for address: {query}")
            return self._parse_feature(features[0], query)
        except GeocodingError:
            raise
        except (AttributeError, KeyError, IndexError, TypeError, ValueError, ValidationError) as e:
            raise ProviderError(
                f"malformed geocoding response: {type(e).__name__}: {e}"
            ) from e

    def _parse_feature(self, feature: dict, query: str) -> GeocodeResult:
        coords = (feature.get("geometry") or {}).get("coordinates") or []
        if len(coords) < 2:
            raise ProviderError("invalid coordinates in geocoding response")

        # Mapbox returns [lng, lat]
        try:
            longitude, latitude = float(coords[0]), float(coords[1])
        except (TypeError, ValueError) as e:
            raise ProviderError(f"non-numeric coordinates: {coords!r}") from e
        if not validate_coordinates(latitude, longitude):
            raise ProviderError(f"coordinates out of range: {latitude}, {longitude}")

        components = {}
        for ctx in feature.get("context") or []:
            prefix = str(ctx.get("id", "")).split(".", 1)[0]
            key = self.COMPONENT_PREFIXES.get(prefix)
            if key:
                components[key] = ctx.get("text")

        properties = feature.get("properties") or {}
        formatted = properties.get("full_address") or feature.get("place_name") or query

        relevance = feature.get("relevance") or 0.5
        confidence = min(max(float(relevance), 0.0), 1.0)

        return GeocodeResult(
            latitude=latitude,
            longitude=longitude,
            formatted_address=formatted,
            confidence=confidence,
            components=AddressComponents(**components),
            raw=feature,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
