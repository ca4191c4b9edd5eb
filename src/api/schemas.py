"""Pydantic request/response schemas for the FastAPI endpoints."""

import dataclasses
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.extraction.models import (
    ExtractionRequest,
    FusedResult,
    FusionMetadata,
    StructuredExtraction,
)


class ExtractRequest(BaseModel):
    """Request body naming one image by URL or inline base64 content."""

    model_config = ConfigDict(populate_by_name=True)

    image_url: str | None = Field(default=None, alias="imageUrl")
    image_base64: str | None = Field(default=None, alias="imageBase64")

    def to_request(self) -> ExtractionRequest:
        return ExtractionRequest(
            image_url=self.image_url, image_base64=self.image_base64
        )


class StructuredResponse(BaseModel):
    """Response schema for single-provider extraction."""

    title: str = ""
    description: str = ""
    brand: str = ""
    model: str = ""
    serial_number: str = ""
    category: str = ""
    estimated_value: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    confidence: float = Field(default=0.0, ge=0, le=100, allow_inf_nan=False)
    extracted_text: str = ""

    @classmethod
    def from_extraction(cls, extraction: StructuredExtraction) -> "StructuredResponse":
        return cls(**dataclasses.asdict(extraction))


class MetadataResponse(BaseModel):
    """Provenance metadata of a fused result."""

    text_confidence: float = Field(default=0.0, ge=0, le=100, allow_inf_nan=False)
    structure_confidence: float = Field(
        default=0.0, ge=0, le=100, allow_inf_nan=False
    )
    image_quality: int = Field(default=0, ge=0, le=100)
    providers_used: list[str] = Field(default_factory=list)
    processing_time: int = Field(default=0, ge=0)


class FusedResponse(StructuredResponse):
    """Response schema for a fused extraction."""

    provider: str = "none"
    raw_text: str = ""
    metadata: MetadataResponse = Field(default_factory=MetadataResponse)

    @classmethod
    def from_result(cls, result: FusedResult) -> "FusedResponse":
        return cls.model_validate(dataclasses.asdict(result))

    def to_result(self) -> FusedResult:
        data = self.model_dump()
        metadata = data.pop("metadata")
        metadata["providers_used"] = tuple(metadata["providers_used"])
        return FusedResult(**data, metadata=FusionMetadata(**metadata))


class ErrorResponse(BaseModel):
    """Error body returned on validation or processing failures."""

    error: str
    details: str | None = None


class ReviewRequest(BaseModel):
    """A fused result to review, with optional user corrections."""

    result: FusedResponse
    corrections: dict[str, Any] = Field(default_factory=dict)


class ReviewFieldResponse(BaseModel):
    """One field with its display confidence badge."""

    field_name: str
    value: Any
    confidence: float
    band: str


class ValidationResultResponse(BaseModel):
    """Response schema for a correction validation check."""

    field_name: str
    is_valid: bool
    message: str
    rule_name: str


class ReviewResponse(BaseModel):
    """Review decision plus the corrected result."""

    auto_apply: bool
    band: str
    message: str
    fields: list[ReviewFieldResponse]
    result: FusedResponse
    validation: list[ValidationResultResponse] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    providers: dict[str, bool]
