"""Fusion pipeline combining the generative and text-detection providers.

Runs both providers concurrently with independent failure isolation, then
merges whatever came back into one :class:`FusedResult` with a
cross-validated confidence score and provenance metadata.
"""

import asyncio
import dataclasses
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from src.ocr.google_vision import GoogleVisionClient
from src.ocr.openai_vision import OpenAIVisionClient
from src.utils.config import AppConfig
from src.utils.logger import get_logger

from .models import (
    ExtractionRequest,
    FusedResult,
    FusionMetadata,
    Provider,
    RawTextResult,
    StructuredExtraction,
    clamp_confidence,
    round_half_up,
)

logger = get_logger(__name__)

T = TypeVar("T")

CROSS_VALIDATION_BONUS = 15
SHORT_TEXT_LENGTH = 10
SHORT_TEXT_QUALITY = 20


def calculate_image_quality(text: str) -> int:
    """Estimate image quality from how much plausible text was read.

    Args:
        text: Recognized text used for the current merge branch.

    Returns:
        Heuristic score in [0, 100].
    """
    if len(text) < SHORT_TEXT_LENGTH:
        return SHORT_TEXT_QUALITY

    length = len(text)
    word_count = len(text.split())

    score = 50
    if length > 100:
        score += 20
    if word_count > 10:
        score += 15
    if word_count and 3 <= length / word_count <= 8:
        score += 15

    return max(0, min(100, score))


def texts_corroborate(first: str, second: str) -> bool:
    """Whether either text, lower-cased, contains the other."""
    a, b = first.lower(), second.lower()
    return a in b or b in a


def merge_results(
    structured: StructuredExtraction | None,
    raw: RawTextResult | None,
) -> FusedResult:
    """Merge the two provider results into one fused record.

    Args:
        structured: Generative provider result, or ``None`` if unavailable.
        raw: Text-detection provider result, or ``None`` if unavailable.

    Returns:
        The fused result, with ``processing_time`` left at 0.
    """
    match structured, raw:
        case None, None:
            return FusedResult()

        case StructuredExtraction() as a, None:
            confidence = clamp_confidence(a.confidence)
            return FusedResult(
                **_structured_fields(a),
                confidence=confidence,
                provider=Provider.OPENAI.value,
                raw_text=a.extracted_text,
                metadata=FusionMetadata(
                    text_confidence=confidence,
                    structure_confidence=confidence,
                    image_quality=calculate_image_quality(a.extracted_text),
                    providers_used=(Provider.OPENAI.value,),
                ),
            )

        case None, RawTextResult() as b:
            confidence = clamp_confidence(b.confidence)
            return FusedResult(
                extracted_text=b.text,
                raw_text=b.text,
                confidence=confidence,
                provider=Provider.GOOGLE.value,
                metadata=FusionMetadata(
                    text_confidence=confidence,
                    structure_confidence=0.0,
                    image_quality=calculate_image_quality(b.text),
                    providers_used=(Provider.GOOGLE.value,),
                ),
            )

        case StructuredExtraction() as a, RawTextResult() as b:
            bonus = (
                CROSS_VALIDATION_BONUS
                if texts_corroborate(a.extracted_text, b.text)
                else 0
            )
            merged = round_half_up((a.confidence + b.confidence) / 2) + bonus
            raw_text = (
                b.text if len(b.text) > len(a.extracted_text) else a.extracted_text
            )
            return FusedResult(
                **_structured_fields(a),
                confidence=clamp_confidence(merged),
                provider=Provider.HYBRID.value,
                raw_text=raw_text,
                metadata=FusionMetadata(
                    text_confidence=clamp_confidence(b.confidence),
                    structure_confidence=clamp_confidence(a.confidence),
                    image_quality=calculate_image_quality(b.text),
                    providers_used=(Provider.OPENAI.value, Provider.GOOGLE.value),
                ),
            )

    raise TypeError(
        f"unsupported provider results: {type(structured).__name__}, "
        f"{type(raw).__name__}"
    )


def _structured_fields(extraction: StructuredExtraction) -> dict[str, object]:
    fields = dataclasses.asdict(extraction)
    fields.pop("confidence")
    return fields


class FusionEngine:
    """Extracts one image with two providers and fuses their output.

    Provider failures never propagate: each call is guarded so that an
    exception or timeout becomes a missing result, and the merge scores
    the outcome accordingly. Only an invalid request raises.

    Args:
        config: Application configuration.
        client: Shared async HTTP client. When omitted, a client is opened
            for the duration of each call.
        structured_provider: Override for the generative provider.
        text_provider: Override for the text-detection provider.
    """

    def __init__(
        self,
        config: AppConfig,
        client: httpx.AsyncClient | None = None,
        structured_provider: OpenAIVisionClient | None = None,
        text_provider: GoogleVisionClient | None = None,
    ) -> None:
        self.config = config
        self._client = client
        self._structured_provider = structured_provider
        self._text_provider = text_provider
        self.timeout = config.fusion.provider_timeout_seconds

    async def extract(self, request: ExtractionRequest) -> FusedResult:
        """Run both providers on an image and return the fused result.

        Args:
            request: Image reference to extract from.

        Returns:
            The fused result, stamped with the call's wall-clock duration.

        Raises:
            ValidationError: If the request has no (or two) image references.
        """
        request.validate()
        start = time.monotonic()

        if self._client is not None:
            result = await self._run(request, self._client)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                result = await self._run(request, client)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Fusion completed - provider: %s, confidence: %.0f%%, time: %dms",
            result.provider,
            result.confidence,
            elapsed_ms,
        )
        return dataclasses.replace(
            result,
            metadata=dataclasses.replace(result.metadata, processing_time=elapsed_ms),
        )

    async def _run(
        self, request: ExtractionRequest, client: httpx.AsyncClient
    ) -> FusedResult:
        structured_provider = self._structured_provider or OpenAIVisionClient(
            self.config.openai, client
        )
        text_provider = self._text_provider or GoogleVisionClient(
            self.config.google,
            client,
            download_timeout=self.config.fusion.download_timeout_seconds,
        )

        structured, raw = await asyncio.gather(
            self._guarded(Provider.OPENAI.value, structured_provider.extract, request),
            self._guarded(Provider.GOOGLE.value, text_provider.detect_text, request),
        )
        return merge_results(structured, raw)

    async def _guarded(
        self,
        name: str,
        call: Callable[[ExtractionRequest], Awaitable[T]],
        request: ExtractionRequest,
    ) -> T | None:
        """Await one provider call, converting any failure into ``None``."""
        try:
            return await asyncio.wait_for(call(request), timeout=self.timeout)
        except TimeoutError:
            logger.warning("Provider %s timed out after %.1fs", name, self.timeout)
        except Exception as exc:
            logger.warning("Provider %s unavailable: %s", name, exc)
        return None
