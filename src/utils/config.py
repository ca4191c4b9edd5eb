"""Configuration management for the OCR fusion service.

Loads and validates YAML configuration with sensible defaults for the
two vision providers, the fusion engine, and the review policy. API
credentials are never stored in the file; each provider names the
environment variable that holds its key.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ProviderConfig(BaseModel):
    """Settings shared by both vision providers."""

    api_url: str
    api_key_env: str

    def api_key(self) -> str | None:
        """Read the provider credential from the environment.

        Returns:
            The API key, or ``None`` when the variable is unset or empty.
        """
        return os.environ.get(self.api_key_env) or None


class OpenAIConfig(ProviderConfig):
    """Configuration for the generative structured-extraction provider."""

    api_url: str = "https://api.openai.com/v1/chat/completions"
    api_key_env: str = "OPENAI_API_KEY"
    model: str = "gpt-4o"
    max_tokens: int = 1000
    temperature: float = 0.1


class GoogleVisionConfig(ProviderConfig):
    """Configuration for the text-detection provider."""

    api_url: str = "https://vision.googleapis.com/v1/images:annotate"
    api_key_env: str = "GOOGLE_CLOUD_API_KEY"
    max_results: int = 10
    default_annotation_confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class FusionConfig(BaseModel):
    """Configuration for the fusion engine."""

    provider_timeout_seconds: float = Field(default=30.0, gt=0)
    download_timeout_seconds: float = Field(default=15.0, gt=0)
    max_concurrent_extractions: int = Field(default=4, gt=0)


class ReviewConfig(BaseModel):
    """Thresholds used by the downstream review policy."""

    auto_apply_threshold: int = Field(default=80, ge=0, le=100)
    warning_threshold: int = Field(default=50, ge=0, le=100)


class AppConfig(BaseModel):
    """Top-level application configuration."""

    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    google: GoogleVisionConfig = Field(default_factory=GoogleVisionConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
