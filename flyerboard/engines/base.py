"""
Abstract base class for flyer extraction engines.
Every engine must produce a validated FlyerDetectionResult.
"""

from abc import ABC, abstractmethod

from flyerboard.schemas.extraction import FlyerDetectionResult


class ExtractionEngine(ABC):
    """
    Abstract base class for extraction engines.

    Every engine must:
    1. Accept the raw bytes of a validated bulletin-board photo
    2. Return FlyerDetectionResult
    3. Report its name and version
    4. Raise EngineError on failure, never return partial or unvalidated data
    """

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Unique identifier: 'openai_vision', 'stub'"""
        ...

    @property
    @abstractmethod
    def engine_version(self) -> str:
        """Model name or semver string."""
        ...

    @abstractmethod
    async def extract(self, image_bytes: bytes) -> FlyerDetectionResult:
        """Detect flyer regions and the events printed on them."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify engine is available and responding."""
        ...


class EngineError(Exception):
    """Raised when an extraction engine fails."""

    def __init__(self, engine_name: str, error_code: str, message: str):
        self.engine_name = engine_name
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{engine_name}] {error_code}: {message}")
