"""
Stub extraction engine for running the pipeline without a vision model.
Returns a fixed FlyerDetectionResult (empty unless one is supplied).
"""

from typing import Optional

from flyerboard.engines.base import ExtractionEngine
from flyerboard.schemas.extraction import FlyerDetectionResult


class StubEngine(ExtractionEngine):
    """Fake adapter that returns a canned but valid extraction."""

    def __init__(self, result: Optional[FlyerDetectionResult] = None):
        self._result = result or FlyerDetectionResult(
            image_quality="unknown",
            processing_notes="stub extraction: no vision model configured",
        )
        self.calls = 0

    @property
    def engine_name(self) -> str:
        return "stub"

    @property
    def engine_version(self) -> str:
        return "0.1.0"

    async def extract(self, image_bytes: bytes) -> FlyerDetectionResult:
        self.calls += 1
        return self._result.model_copy(deep=True)

    async def health_check(self) -> bool:
        """Stub is always healthy."""
        return True
