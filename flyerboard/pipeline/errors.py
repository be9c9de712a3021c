"""
Pipeline error taxonomy.

Every error carries a stable ``error_code`` that is persisted on the
submission and used as a metrics label.
"""

from typing import Optional


class FlyerboardError(Exception):
    """Base class for pipeline errors."""

    default_code = "ERR_PIPELINE"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code or self.default_code
        super().__init__(message)


class InputValidationError(FlyerboardError):
    """Upload rejected before a submission exists (format, size, empty)."""
    default_code = "ERR_INPUT_INVALID"


class ExtractionFailure(FlyerboardError):
    """Vision extraction failed, timed out or returned malformed output. Fatal for the submission."""
    default_code = "ERR_EXTRACTION"


class CandidateStageFailure(FlyerboardError):
    """Moderation or geocoding failed for one candidate. Recovered locally."""
    default_code = "ERR_CANDIDATE_STAGE"

    def __init__(self, stage: str, message: str, error_code: Optional[str] = None):
        self.stage = stage
        super().__init__(message, error_code)


class GeocodingError(CandidateStageFailure):
    default_code = "ERR_GEOCODING"

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__("geocoding", message, error_code)


class InvalidAddress(GeocodingError):
    default_code = "ERR_GEOCODE_INVALID_ADDRESS"


class NoResult(GeocodingError):
    default_code = "ERR_GEOCODE_NO_RESULT"


class ProviderError(GeocodingError):
    default_code = "ERR_GEOCODE_PROVIDER"


class PromotionFailure(FlyerboardError):
    """Candidate could not become an Event. The decision stands."""
    default_code = "ERR_PROMOTION"


class MissingTitle(PromotionFailure):
    default_code = "ERR_MISSING_TITLE"


class PersistenceFailure(FlyerboardError):
    """Store unreachable or connection lost. Fatal for the submission."""
    default_code = "ERR_PERSISTENCE"


class InvalidTransition(FlyerboardError):
    default_code = "ERR_INVALID_TRANSITION"


class NotFound(FlyerboardError):
    default_code = "ERR_NOT_FOUND"
