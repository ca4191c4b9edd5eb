"""Shared test fixtures for the OCR fusion test suite."""

import io
from pathlib import Path

import pytest
from PIL import Image

from src.extraction.models import RawTextResult, StructuredExtraction
from src.utils.config import AppConfig, FusionConfig


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration with short timeouts for tests."""
    return AppConfig(
        fusion=FusionConfig(provider_timeout_seconds=0.5, download_timeout_seconds=0.5)
    )


@pytest.fixture
def provider_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set fake credentials for both providers."""
    monkeypatch.setenv("OPENAI_API_KEY", "test-openai-key")
    monkeypatch.setenv("GOOGLE_CLOUD_API_KEY", "test-google-key")


@pytest.fixture
def no_provider_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove both provider credentials from the environment."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_CLOUD_API_KEY", raising=False)


@pytest.fixture
def png_bytes() -> bytes:
    """Create a minimal PNG image as bytes."""
    buf = io.BytesIO()
    Image.new("RGB", (32, 16), (255, 255, 255)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def structured() -> StructuredExtraction:
    """A typical generative-provider extraction of a TV label."""
    return StructuredExtraction(
        title="Samsung 55-inch QLED TV",
        description="Flat-screen television with visible model label",
        brand="Samsung",
        model="QN55Q80C",
        serial_number="0B7G3CAT400123",
        category="electronics",
        estimated_value=899.0,
        confidence=90,
        extracted_text="SAMSUNG QN55Q80C",
    )


@pytest.fixture
def raw_text() -> RawTextResult:
    """A text-detection result whose text contains the structured text."""
    return RawTextResult(
        text="Samsung qn55q80c\nS/N 0B7G3CAT400123\nMade in Mexico", confidence=70
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
