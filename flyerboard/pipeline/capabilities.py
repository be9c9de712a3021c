"""
External capability selection.

Live or local implementation of extraction, moderation and geocoding is
chosen once here, from the configured credentials. Stages only ever see the
interfaces.
"""

from typing import Optional

import structlog
from openai import AsyncOpenAI

from flyerboard.config import Settings
from flyerboard.engines.base import ExtractionEngine
from flyerboard.engines.stub_engine import StubEngine
from flyerboard.engines.vision_engine import OpenAIVisionEngine
from flyerboard.pipeline.geocoding import Geocoder, MapboxGeocoder, StubGeocoder
from flyerboard.pipeline.moderation import (
    HeuristicQualityAssessor,
    LLMQualityAssessor,
    QualityAssessor,
)

logger = structlog.get_logger(__name__)

SUPPORTED_GEOCODERS = {"mapbox"}


class Capabilities:
    """The three external capabilities the pipeline consumes."""

    def __init__(
        self,
        extraction: ExtractionEngine,
        assessor: QualityAssessor,
        geocoder: Geocoder,
        openai_client: Optional[AsyncOpenAI] = None,
    ):
        self.extraction = extraction
        self.assessor = assessor
        self.geocoder = geocoder
        self._openai_client = openai_client

    def describe(self) -> dict:
        return {
            "extraction": self.extraction.engine_name,
            "moderation": self.assessor.assessor_name,
            "geocoding": self.geocoder.provider_name,
        }

    async def aclose(self) -> None:
        await self.geocoder.aclose()
        if self._openai_client is not None:
            await self._openai_client.close()


def build_capabilities(settings: Settings) -> Capabilities:
    if settings.GEOCODER not in SUPPORTED_GEOCODERS:
        raise ValueError(f"unsupported geocoder: {settings.GEOCODER}")

    client = None
    if settings.vision_configured:
        client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY, base_url=settings.OPENAI_BASE_URL)
        extraction = OpenAIVisionEngine(
            client,
            model=settings.OPENAI_MODEL,
            timeout_seconds=settings.EXTRACTION_TIMEOUT_SECONDS,
            max_long_side=settings.IMAGE_MAX_LONG_SIDE,
            jpeg_quality=settings.IMAGE_JPEG_QUALITY,
        )
        assessor = LLMQualityAssessor(
            client,
            model=settings.OPENAI_MODEL,
            timeout_seconds=settings.MODERATION_TIMEOUT_SECONDS,
        )
    else:
        extraction = StubEngine()
        assessor = HeuristicQualityAssessor()

    if settings.geocoder_configured:
        geocoder = MapboxGeocoder(
            api_key=settings.GEOCODER_API_KEY,
            base_url=settings.GEOCODER_BASE_URL,
            timeout_seconds=settings.GEOCODING_TIMEOUT_SECONDS,
        )
    else:
        geocoder = StubGeocoder(default_country=settings.DEFAULT_COUNTRY)

    capabilities = Capabilities(extraction, assessor, geocoder, openai_client=client)
    logger.info("capabilities_selected", **capabilities.describe())
    return capabilities
