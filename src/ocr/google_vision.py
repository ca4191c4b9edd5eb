"""Text-detection provider: raw text and confidence from the Vision API."""

import math
from typing import Any

import httpx

from src.extraction.models import (
    ExtractionRequest,
    RawTextResult,
    clamp_confidence,
    round_half_up,
)
from src.utils.config import GoogleVisionConfig
from src.utils.exceptions import ProviderUnavailable
from src.utils.logger import get_logger

from .image_source import download_image, encode_base64

logger = get_logger(__name__)

PROVIDER_NAME = "google-style"


def average_confidence(
    annotations: list[dict[str, Any]], default_confidence: float
) -> int:
    """Average per-annotation confidences onto a 0-100 scale.

    Non-finite confidences count as 0.

    Args:
        annotations: Text annotations as returned by the API.
        default_confidence: Value (0-1) used for annotations that carry
            no confidence.

    Returns:
        Mean confidence as a percentage, rounded half up.
    """
    if not annotations:
        return 0
    total = 0.0
    for annotation in annotations:
        confidence = annotation.get("confidence")
        if confidence is None:
            total += default_confidence
        elif math.isfinite(float(confidence)):
            total += float(confidence)
    return round_half_up(total / len(annotations) * 100)


class GoogleVisionClient:
    """Vision API client that runs ``TEXT_DETECTION`` on one image.

    Args:
        config: Provider endpoint and credential settings.
        client: Shared async HTTP client.
        download_timeout: Timeout in seconds for fetching URL images.
    """

    def __init__(
        self,
        config: GoogleVisionConfig,
        client: httpx.AsyncClient,
        download_timeout: float = 15.0,
    ) -> None:
        self.config = config
        self._client = client
        self.download_timeout = download_timeout

    @property
    def available(self) -> bool:
        """Whether a credential is configured."""
        return self.config.api_key() is not None

    async def _inline_content(self, request: ExtractionRequest) -> str:
        if request.has_inline:
            return request.image_base64 or ""
        data = await download_image(
            self._client, request.image_url or "", self.download_timeout
        )
        return encode_base64(data)

    async def detect_text(self, request: ExtractionRequest) -> RawTextResult:
        """Detect all text in one image.

        Args:
            request: Validated extraction request.

        Returns:
            Full text and averaged confidence. An image without text
            yields an empty result with confidence 0.

        Raises:
            ProviderUnavailable: On missing credentials, download or
                transport failures, non-2xx responses, or an error object
                in the annotation response.
        """
        api_key = self.config.api_key()
        if not api_key:
            raise ProviderUnavailable(PROVIDER_NAME, "API key not configured")

        try:
            content = await self._inline_content(request)
            response = await self._client.post(
                self.config.api_url,
                params={"key": api_key},
                json={
                    "requests": [
                        {
                            "image": {"content": content},
                            "features": [
                                {
                                    "type": "TEXT_DETECTION",
                                    "maxResults": self.config.max_results,
                                }
                            ],
                        }
                    ]
                },
            )
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(PROVIDER_NAME, f"request failed: {exc}") from exc

        if response.status_code != 200:
            raise ProviderUnavailable(
                PROVIDER_NAME, f"HTTP {response.status_code} from annotate API"
            )

        try:
            first = (response.json().get("responses") or [{}])[0]
        except (ValueError, AttributeError, TypeError) as exc:
            raise ProviderUnavailable(
                PROVIDER_NAME, "malformed annotate response"
            ) from exc
        if not isinstance(first, dict):
            raise ProviderUnavailable(PROVIDER_NAME, "malformed annotate response")

        if first.get("error"):
            message = first["error"].get("message", "unknown error")
            raise ProviderUnavailable(PROVIDER_NAME, f"annotate error: {message}")

        annotations = first.get("textAnnotations") or []
        if not annotations:
            logger.info("Text detection found no text")
            return RawTextResult(text="", confidence=0)

        text = annotations[0].get("description") or ""
        confidence = clamp_confidence(
            average_confidence(annotations, self.config.default_annotation_confidence)
        )
        logger.info(
            "Text detection read %d characters from %d annotations",
            len(text),
            len(annotations),
        )
        return RawTextResult(text=text, confidence=confidence)
