"""FastAPI application for the HomeGuard OCR fusion API.

Provides REST endpoints for fused two-provider extraction, single-provider
extraction, result review, and health checks.
"""

import dataclasses

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.extraction.basic import BasicExtractor
from src.extraction.fusion import FusionEngine
from src.extraction.models import Provider
from src.utils.config import load_config
from src.utils.exceptions import ValidationError
from src.utils.logger import get_logger
from src.validation.review import ReviewPolicy

from .schemas import (
    ErrorResponse,
    ExtractRequest,
    FusedResponse,
    HealthResponse,
    ReviewFieldResponse,
    ReviewRequest,
    ReviewResponse,
    StructuredResponse,
    ValidationResultResponse,
)

logger = get_logger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="HomeGuard OCR Fusion API",
    description="Extract asset details from photos of household items and labels",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_components() -> tuple[FusionEngine, BasicExtractor, ReviewPolicy]:
    """Initialize and return the request-scoped processing components.

    Returns:
        Tuple of (fusion_engine, basic_extractor, review_policy).
    """
    config = load_config()
    return FusionEngine(config), BasicExtractor(config), ReviewPolicy(config.review)


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(
        status_code=status_code, content=body.model_dump(exclude_none=True)
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies as a plain 400 error."""
    return _error(400, "Invalid request body", str(exc.errors()))


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service status and which providers have credentials."""
    config = load_config()
    return HealthResponse(
        status="healthy",
        version=VERSION,
        providers={
            Provider.OPENAI.value: config.openai.api_key() is not None,
            Provider.GOOGLE.value: config.google.api_key() is not None,
        },
    )


@app.post(
    "/extract",
    response_model=FusedResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def extract_enhanced(body: ExtractRequest) -> FusedResponse | JSONResponse:
    """Extract asset fields from an image with both providers and fuse them.

    Always answers 200 with the best available result, even when both
    providers failed; only a missing image reference is a 400.
    """
    try:
        engine, _, _ = _get_components()
        logger.info("Starting enhanced OCR extraction")
        result = await engine.extract(body.to_request())
        return FusedResponse.from_result(result)
    except ValidationError as exc:
        return _error(400, str(exc))
    except Exception as exc:
        logger.error("Enhanced OCR extraction failed: %s", exc)
        return _error(500, "Failed to process image", str(exc))


@app.post(
    "/extract/basic",
    response_model=StructuredResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def extract_basic(body: ExtractRequest) -> StructuredResponse | JSONResponse:
    """Extract asset fields with the generative provider only."""
    try:
        _, extractor, _ = _get_components()
        extraction = await extractor.extract(body.to_request())
        return StructuredResponse.from_extraction(extraction)
    except ValidationError as exc:
        return _error(400, str(exc))
    except Exception as exc:
        logger.error("OCR extraction failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content={
                "error": "OCR extraction failed",
                "details": str(exc),
                "confidence": 0,
                "extracted_text": "",
            },
        )


@app.post("/review", response_model=ReviewResponse)
async def review_result(body: ReviewRequest) -> ReviewResponse:
    """Apply corrections to a fused result and decide how to present it."""
    _, _, policy = _get_components()
    result, checks = policy.apply_corrections(body.result.to_result(), body.corrections)
    decision = policy.decide(result)

    return ReviewResponse(
        auto_apply=decision.auto_apply,
        band=decision.band.value,
        message=decision.message,
        fields=[
            ReviewFieldResponse(
                field_name=f.field_name,
                value=f.value,
                confidence=f.confidence,
                band=f.band.value,
            )
            for f in decision.fields
        ],
        result=FusedResponse.from_result(result),
        validation=[
            ValidationResultResponse(**dataclasses.asdict(c)) for c in checks
        ],
    )
