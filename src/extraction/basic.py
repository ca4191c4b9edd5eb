"""Single-provider extraction using only the generative vision model.

Unlike the fusion engine, provider failures here are reported to the
caller. A reply that is not valid JSON still yields a usable record built
around the raw reply text.
"""

import dataclasses

import httpx

from src.ocr.openai_vision import OpenAIVisionClient, parse_structured_reply
from src.utils.config import AppConfig
from src.utils.logger import get_logger

from .models import ExtractionRequest, StructuredExtraction, clamp_confidence

logger = get_logger(__name__)

FALLBACK_TITLE = "Extracted Item"
DEFAULT_CONFIDENCE = 50.0


class BasicExtractor:
    """Structured extraction from the generative provider alone.

    Args:
        config: Application configuration.
        provider: Override for the generative vision client. When omitted,
            a client is built on a fresh HTTP session for each call.
    """

    def __init__(
        self, config: AppConfig, provider: OpenAIVisionClient | None = None
    ) -> None:
        self.config = config
        self._provider = provider

    async def extract(self, request: ExtractionRequest) -> StructuredExtraction:
        """Extract structured fields from one image.

        A missing or zero confidence in the reply is reported as 50.

        Args:
            request: Image reference to extract from.

        Returns:
            The parsed extraction, or a fallback record carrying the raw
            reply when it could not be parsed.

        Raises:
            ValidationError: If the request is invalid.
            ProviderUnavailable: If the provider call fails.
        """
        request.validate()
        if self._provider is not None:
            content = await self._provider.complete(request)
        else:
            timeout = self.config.fusion.provider_timeout_seconds
            async with httpx.AsyncClient(timeout=timeout) as client:
                content = await OpenAIVisionClient(self.config.openai, client).complete(
                    request
                )

        try:
            result = parse_structured_reply(content)
        except ValueError as exc:
            logger.warning("Failed to parse extraction reply: %s", exc)
            return StructuredExtraction(
                title=FALLBACK_TITLE,
                confidence=DEFAULT_CONFIDENCE,
                extracted_text=content,
            )

        confidence = result.confidence or DEFAULT_CONFIDENCE
        return dataclasses.replace(result, confidence=clamp_confidence(confidence))
