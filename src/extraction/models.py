"""Value types shared by the providers, the fusion engine and the API.

All records are frozen dataclasses: each is built once per extraction call
and never mutated afterwards.
"""

import math
from dataclasses import dataclass, field
from enum import StrEnum

from src.utils.exceptions import ValidationError


class Provider(StrEnum):
    """Which provider(s) contributed to a fused result."""

    NONE = "none"
    OPENAI = "openai-style"
    GOOGLE = "google-style"
    HYBRID = "hybrid"


class Category(StrEnum):
    """Closed set of asset categories a provider may assign."""

    ELECTRONICS = "electronics"
    FURNITURE = "furniture"
    APPLIANCES = "appliances"
    JEWELRY = "jewelry"
    CLOTHING = "clothing"
    BOOKS = "books"
    TOYS = "toys"
    SPORTS = "sports"
    TOOLS = "tools"
    OTHER = "other"


CATEGORY_VALUES = frozenset(c.value for c in Category)


def normalize_category(value: str | None) -> str:
    """Map a provider-supplied category onto the closed set.

    Empty values stay empty; anything unrecognized becomes ``other``.
    """
    if not value or not value.strip():
        return ""
    cleaned = value.strip().lower()
    if cleaned in CATEGORY_VALUES:
        return cleaned
    return Category.OTHER.value


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into the 0-100 range. NaN counts as 0."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with halves rounding up."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class ExtractionRequest:
    """One image reference to extract from.

    Exactly one of ``image_url`` and ``image_base64`` must carry a value;
    empty strings count as absent.
    """

    image_url: str | None = None
    image_base64: str | None = None

    @property
    def has_url(self) -> bool:
        return bool(self.image_url and self.image_url.strip())

    @property
    def has_inline(self) -> bool:
        return bool(self.image_base64 and self.image_base64.strip())

    def validate(self) -> None:
        """Check that exactly one image reference is present.

        Raises:
            ValidationError: If neither or both references are set.
        """
        if not self.has_url and not self.has_inline:
            raise ValidationError("Either imageUrl or imageBase64 must be provided")
        if self.has_url and self.has_inline:
            raise ValidationError("Provide only one of imageUrl or imageBase64")


@dataclass(frozen=True)
class StructuredExtraction:
    """Semantic fields read by the generative provider."""

    title: str = ""
    description: str = ""
    brand: str = ""
    model: str = ""
    serial_number: str = ""
    category: str = ""
    estimated_value: float = 0.0
    confidence: float = 0.0
    extracted_text: str = ""


@dataclass(frozen=True)
class RawTextResult:
    """Full recognized text and averaged confidence from text detection."""

    text: str
    confidence: float

    @property
    def is_empty(self) -> bool:
        """A successful detection that found no text at all."""
        return not self.text


@dataclass(frozen=True)
class FusionMetadata:
    """Provenance and sub-scores attached to a fused result."""

    text_confidence: float = 0.0
    structure_confidence: float = 0.0
    image_quality: int = 0
    providers_used: tuple[str, ...] = ()
    processing_time: int = 0


@dataclass(frozen=True)
class FusedResult:
    """Structured record returned to the form-filling caller."""

    title: str = ""
    description: str = ""
    brand: str = ""
    model: str = ""
    serial_number: str = ""
    category: str = ""
    estimated_value: float = 0.0
    confidence: float = 0.0
    extracted_text: str = ""
    provider: str = Provider.NONE.value
    raw_text: str = ""
    metadata: FusionMetadata = field(default_factory=FusionMetadata)
