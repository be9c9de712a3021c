"""
OpenAI vision extraction engine.

Sends one prepared JPEG plus a fixed instruction and expects a JSON object
matching FlyerDetectionResult. Anything else is an EngineError.
"""

import asyncio
import base64
import time

import structlog
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from flyerboard.engines.base import EngineError, ExtractionEngine
from flyerboard.observability.metrics import external_api_latency_seconds
from flyerboard.pipeline.errors import InputValidationError
from flyerboard.pipeline.images import prepare_image
from flyerboard.schemas.extraction import FlyerDetectionResult

logger = structlog.get_logger(__name__)


EXTRACTION_PROMPT = """You are an expert at analyzing bulletin board photos to detect and extract event information from flyers and posters.

Analyze this image and identify all event flyers/posters. For each flyer detected, extract the event details.

Return your analysis in this EXACT JSON format:

{
  "flyers_detected": [
    {
      "region_id": "flyer_1",
      "confidence": 0.95,
      "polygon": [
        {"x": 100, "y": 50},
        {"x": 300, "y": 50},
        {"x": 300, "y": 400},
        {"x": 100, "y": 400}
      ],
      "rotation_deg": 0,
      "events": [
        {
          "event_id": "event_1_1",
          "fields": {
            "title": "Summer Music Festival",
            "date_time": "2024-07-15T19:00:00",
            "end_time": "2024-07-15T22:00:00",
            "venue": "Central Park",
            "address": "123 Main St, City, ST 12345",
            "price": "$25",
            "description": "Live music and food trucks",
            "organizer": "Music Society",
            "contact_info": "info@example.org",
            "url": "https://example.org",
            "category": "music"
          },
          "confidences": {
            "title": 0.98,
            "date_time": 0.85,
            "location": 0.90,
            "overall": 0.91
          },
          "source_excerpt": "The text from the flyer that contains this event info"
        }
      ],
      "notes": "Clear, well-lit flyer with all details visible"
    }
  ],
  "total_regions": 1,
  "image_quality": "good",
  "processing_notes": "Clear image with good lighting. Detected 1 flyer containing 1 event."
}

Guidelines:
- Only detect actual event flyers/posters (not ads, notices, or other content)
- Polygon coordinates should outline the flyer boundaries (0,0 = top-left), exactly 4 points
- Confidence scores: 0.0-1.0 (0.7+ for reliable detection)
- Parse dates into ISO format when possible, otherwise leave as text
- Extract all visible event details, use null for missing information
- Be conservative with confidence scores - only high confidence for clearly visible text
- If no flyers detected, return empty flyers_detected array

Focus on extracting: title, date/time, venue/location, price, description, organizer, contact info, category."""

EXTRACTION_MAX_TOKENS = 2000
EXTRACTION_TEMPERATURE = 0.1


class OpenAIVisionEngine(ExtractionEngine):
    """GPT vision model behind the chat completions API."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o",
        timeout_seconds: float = 60.0,
        max_long_side: int = 2048,
        jpeg_quality: int = 85,
    ):
        self.client = client
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_long_side = max_long_side
        self.jpeg_quality = jpeg_quality

    @property
    def engine_name(self) -> str:
        return "openai_vision"

    @property
    def engine_version(self) -> str:
        return self.model

    async def extract(self, image_bytes: bytes) -> FlyerDetectionResult:
        try:
            prepared = await asyncio.to_thread(
                prepare_image, image_bytes, self.max_long_side, self.jpeg_quality
            )
        except InputValidationError as e:
            raise EngineError(self.engine_name, e.error_code, e.message) from e

        data_url = "data:image/jpeg;base64," + base64.b64encode(prepared).decode("ascii")

        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {
                            "role": "user",
                            "content": [
                                {"type": "text", "text": EXTRACTION_PROMPT},
                                {"type": "image_url", "image_url": {"url": data_url}},
                            ],
                        }
                    ],
                    response_format={"type": "json_object"},
                    max_tokens=EXTRACTION_MAX_TOKENS,
                    temperature=EXTRACTION_TEMPERATURE,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise EngineError(
                self.engine_name, "ERR_EXTRACTION_TIMEOUT",
                f"no response within {self.timeout_seconds}s",
            ) from e
        except OpenAIError as e:
            raise EngineError(
                self.engine_name, "ERR_EXTRACTION_API", f"{type(e).__name__}: {e}"
            ) from e
        finally:
            external_api_latency_seconds.labels(
                capability="extraction", provider=self.engine_name
            ).observe(time.monotonic() - started)

        if not response.choices or not response.choices[0].message.content:
            raise EngineError(self.engine_name, "ERR_EXTRACTION_EMPTY", "no response from model")

        content = response.choices[0].message.content
        try:
            result = FlyerDetectionResult.model_validate_json(content)
        except ValidationError as e:
            logger.warning("extraction_output_invalid", model=self.model, content=content[:500])
            raise EngineError(
                self.engine_name, "ERR_EXTRACTION_MALFORMED", f"output failed validation: {e}"
            ) from e

        logger.info(
            "flyers_extracted",
            model=self.model,
            regions=len(result.flyers_detected),
            candidates=result.candidate_count,
            image_quality=result.image_quality,
        )
        return result

    async def health_check(self) -> bool:
        try:
            await self.client.models.retrieve(self.model)
            return True
        except OpenAIError:
            return False
