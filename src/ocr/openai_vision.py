"""Generative vision provider: structured field extraction via chat completions.

Sends the image with a fixed extraction prompt and parses the model's
reply into a :class:`StructuredExtraction`.
"""

import json
import math
import re
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, field_validator

from src.extraction.models import (
    ExtractionRequest,
    StructuredExtraction,
    clamp_confidence,
    normalize_category,
)
from src.utils.config import OpenAIConfig
from src.utils.exceptions import ProviderUnavailable
from src.utils.logger import get_logger

from .image_source import to_data_url

logger = get_logger(__name__)

PROVIDER_NAME = "openai-style"

EXTRACTION_PROMPT = """You are an expert at extracting structured information from images of household items, receipts, and product labels.

Extract the following information and return it as a valid JSON object:
- title: A clear, descriptive name for the item
- description: Detailed description of the item including any visible features
- brand: The manufacturer or brand name (if visible)
- model: The model number or name (if visible)
- serial_number: Any serial number or identifier (if visible)
- category: Choose from: electronics, furniture, appliances, jewelry, clothing, books, toys, sports, tools, other
- estimated_value: Your best estimate of the item's current market value in USD (number only)
- confidence: Your confidence in the overall extraction (0-100, where 100 is completely certain)
- extracted_text: All visible text you can read from the image

If any field cannot be determined, use empty string for text fields, 0 for estimated_value, and your best confidence assessment.
Return ONLY the JSON object, no other text or markdown formatting."""

_FENCE_OPEN = re.compile(r"```json\n?")
_FENCE_ANY = re.compile(r"```\n?")
_NUMBER_JUNK = re.compile(r"[^\d.\-]")


def strip_code_fences(content: str) -> str:
    """Remove markdown code-fence markers around a model reply."""
    return _FENCE_ANY.sub("", _FENCE_OPEN.sub("", content)).strip()


def _to_number(value: Any) -> float:
    """Coerce a reply value to a finite float, or 0 when that is impossible."""
    if value is None or isinstance(value, bool):
        return 0.0
    if not isinstance(value, int | float):
        value = _NUMBER_JUNK.sub("", str(value))
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


class StructuredPayload(BaseModel):
    """Lenient schema for the JSON object the model is asked to return."""

    model_config = ConfigDict(extra="ignore")

    title: str = ""
    description: str = ""
    brand: str = ""
    model: str = ""
    serial_number: str = ""
    category: str = ""
    estimated_value: float = 0.0
    confidence: float = 0.0
    extracted_text: str = ""

    @field_validator(
        "title",
        "description",
        "brand",
        "model",
        "serial_number",
        "category",
        "extracted_text",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("category")
    @classmethod
    def _closed_category(cls, value: str) -> str:
        return normalize_category(value)

    @field_validator("estimated_value", mode="before")
    @classmethod
    def _non_negative_value(cls, value: Any) -> float:
        return max(0.0, _to_number(value))

    @field_validator("confidence", mode="before")
    @classmethod
    def _bounded_confidence(cls, value: Any) -> float:
        return clamp_confidence(_to_number(value))

    def to_extraction(self) -> StructuredExtraction:
        return StructuredExtraction(**self.model_dump())


def parse_structured_reply(content: str) -> StructuredExtraction:
    """Parse a model reply into a structured extraction.

    Args:
        content: Raw reply text, possibly wrapped in markdown fences.

    Returns:
        The parsed extraction.

    Raises:
        ValueError: If the reply is not a JSON object.
    """
    cleaned = strip_code_fences(content)
    parsed = json.loads(cleaned)
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return StructuredPayload.model_validate(parsed).to_extraction()


class OpenAIVisionClient:
    """Chat-completions client for structured extraction from an image.

    Args:
        config: Provider endpoint, model and credential settings.
        client: Shared async HTTP client.
    """

    def __init__(self, config: OpenAIConfig, client: httpx.AsyncClient) -> None:
        self.config = config
        self._client = client

    @property
    def available(self) -> bool:
        """Whether a credential is configured."""
        return self.config.api_key() is not None

    def _build_payload(self, request: ExtractionRequest) -> dict[str, Any]:
        if request.has_inline:
            image_url = to_data_url(request.image_base64 or "")
        else:
            image_url = request.image_url or ""

        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": EXTRACTION_PROMPT},
                {
                    "role": "user",
                    "content": [{"type": "image_url", "image_url": {"url": image_url}}],
                },
            ],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }

    async def complete(self, request: ExtractionRequest) -> str:
        """Send the image and prompt, returning the raw reply text.

        Args:
            request: Validated extraction request.

        Returns:
            The message content of the first choice.

        Raises:
            ProviderUnavailable: On missing credentials, transport errors,
                non-2xx responses, or a reply without content.
        """
        api_key = self.config.api_key()
        if not api_key:
            raise ProviderUnavailable(PROVIDER_NAME, "API key not configured")

        try:
            response = await self._client.post(
                self.config.api_url,
                headers={"Authorization": f"Bearer {api_key}"},
                json=self._build_payload(request),
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(PROVIDER_NAME, f"request failed: {exc}") from exc

        if response.status_code != 200:
            raise ProviderUnavailable(
                PROVIDER_NAME, f"HTTP {response.status_code} from completions API"
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProviderUnavailable(
                PROVIDER_NAME, "malformed completions response"
            ) from exc

        if not content:
            raise ProviderUnavailable(PROVIDER_NAME, "no content in response")
        return content

    async def extract(self, request: ExtractionRequest) -> StructuredExtraction:
        """Run structured extraction for one image.

        Raises:
            ProviderUnavailable: If the call fails or the reply is not a
                JSON object.
        """
        content = await self.complete(request)
        try:
            result = parse_structured_reply(content)
        except ValueError as exc:
            raise ProviderUnavailable(
                PROVIDER_NAME, f"unparseable reply: {exc}"
            ) from exc

        logger.info(
            "Structured extraction returned confidence %.0f", result.confidence
        )
        return result
