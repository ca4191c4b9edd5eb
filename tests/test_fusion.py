"""Tests for the two-provider fusion engine."""

import asyncio
import dataclasses
from unittest.mock import AsyncMock

import pytest

from src.extraction.fusion import (
    FusionEngine,
    calculate_image_quality,
    merge_results,
    texts_corroborate,
)
from src.extraction.models import (
    ExtractionRequest,
    FusedResult,
    RawTextResult,
    StructuredExtraction,
)
from src.utils.config import AppConfig
from src.utils.exceptions import ProviderUnavailable, ValidationError


class TestImageQuality:
    """Tests for the text-based image quality heuristic."""

    def test_short_text_is_fixed_low_score(self) -> None:
        assert calculate_image_quality("") == 20
        assert calculate_image_quality("abc") == 20
        assert calculate_image_quality("123456789") == 20

    def test_short_text_ignores_other_rules(self) -> None:
        assert calculate_image_quality("a b c d e") == 20

    def test_base_score_for_one_long_token(self) -> None:
        # 20 chars, 1 word, average length 20 -> no bonuses
        assert calculate_image_quality("x" * 20) == 50

    def test_reasonable_word_length_bonus(self) -> None:
        # "hello world" -> 11 chars, 2 words, average 5.5
        assert calculate_image_quality("hello world") == 65

    def test_word_length_range_is_inclusive(self) -> None:
        # 12 chars / 4 words = 3.0
        assert calculate_image_quality("ab ab ab abc") == 65
        # 16 chars / 2 words = 8.0
        assert calculate_image_quality("abcdefg abcdefgh") == 65

    def test_all_bonuses_cap_at_100(self) -> None:
        text = " ".join(["label"] * 30)
        assert len(text) > 100
        assert calculate_image_quality(text) == 100

    def test_long_text_and_word_count_bonuses(self) -> None:
        # 12 words of 20 chars -> length bonus, count bonus, no length-range bonus
        text = " ".join(["x" * 20] * 12)
        assert calculate_image_quality(text) == 85

    def test_whitespace_only_text_has_no_word_bonus(self) -> None:
        assert calculate_image_quality(" " * 50) == 50

    @pytest.mark.parametrize(
        "text",
        ["", "a", "a" * 500, "a " * 300, "word " * 3, "\n\n\n\n\n\n\n\n\n\n\n", "x y"],
    )
    def test_always_within_bounds(self, text: str) -> None:
        assert 0 <= calculate_image_quality(text) <= 100


class TestTextsCorroborate:
    """Tests for the cross-validation substring check."""

    def test_case_insensitive_containment(self) -> None:
        assert texts_corroborate("SAMSUNG", "samsung tv")
        assert texts_corroborate("Samsung TV", "SAMSUNG")

    def test_disjoint_texts(self) -> None:
        assert not texts_corroborate("Samsung", "Whirlpool")

    def test_empty_text_is_contained_in_anything(self) -> None:
        assert texts_corroborate("", "anything")


class TestMergeResults:
    """Tests for the pure merge step."""

    def test_both_missing_returns_default(self) -> None:
        result = merge_results(None, None)
        assert result == FusedResult()
        assert result.provider == "none"
        assert result.confidence == 0
        assert result.category == ""
        assert result.metadata.providers_used == ()
        assert result.metadata.image_quality == 0

    def test_structured_only(self, structured: StructuredExtraction) -> None:
        result = merge_results(structured, None)
        assert result.provider == "openai-style"
        assert result.title == structured.title
        assert result.brand == structured.brand
        assert result.model == structured.model
        assert result.serial_number == structured.serial_number
        assert result.category == structured.category
        assert result.estimated_value == structured.estimated_value
        assert result.extracted_text == structured.extracted_text
        assert result.raw_text == structured.extracted_text
        assert result.confidence == 90
        assert result.metadata.text_confidence == 90
        assert result.metadata.structure_confidence == 90
        assert result.metadata.providers_used == ("openai-style",)
        assert result.metadata.image_quality == calculate_image_quality(
            structured.extracted_text
        )

    def test_text_only(self, raw_text: RawTextResult) -> None:
        result = merge_results(None, raw_text)
        assert result.provider == "google-style"
        assert result.extracted_text == raw_text.text
        assert result.raw_text == raw_text.text
        assert result.confidence == 70
        assert result.metadata.text_confidence == 70
        assert result.metadata.structure_confidence == 0
        assert result.brand == ""
        assert result.model == ""
        assert result.serial_number == ""
        assert result.category == ""
        assert result.estimated_value == 0
        assert result.metadata.providers_used == ("google-style",)

    def test_empty_text_detection_is_not_treated_as_missing(self) -> None:
        result = merge_results(None, RawTextResult(text="", confidence=0))
        assert result.provider == "google-style"
        assert result.extracted_text == ""
        assert result.confidence == 0
        assert result.metadata.image_quality == 20

    def test_hybrid_with_overlap_adds_bonus(
        self, structured: StructuredExtraction, raw_text: RawTextResult
    ) -> None:
        result = merge_results(structured, raw_text)
        assert result.provider == "hybrid"
        assert result.confidence == 95
        assert result.metadata.text_confidence == 70
        assert result.metadata.structure_confidence == 90
        assert result.metadata.providers_used == ("openai-style", "google-style")
        assert result.brand == "Samsung"
        assert result.metadata.image_quality == calculate_image_quality(raw_text.text)

    def test_hybrid_without_overlap_has_no_bonus(
        self, structured: StructuredExtraction
    ) -> None:
        raw = RawTextResult(text="Whirlpool washer WTW5000", confidence=70)
        result = merge_results(structured, raw)
        assert result.confidence == 80

    def test_hybrid_rounds_half_up(self, structured: StructuredExtraction) -> None:
        raw = RawTextResult(text="unrelated text", confidence=71)
        result = merge_results(structured, raw)
        assert result.confidence == 81

    def test_hybrid_confidence_clamped_to_100(
        self, structured: StructuredExtraction
    ) -> None:
        a = dataclasses.replace(structured, confidence=98)
        b = RawTextResult(text="samsung qn55q80c", confidence=96)
        result = merge_results(a, b)
        assert result.confidence == 100

    def test_hybrid_raw_text_prefers_longer_text(
        self, structured: StructuredExtraction, raw_text: RawTextResult
    ) -> None:
        assert merge_results(structured, raw_text).raw_text == raw_text.text

        longer = dataclasses.replace(structured, extracted_text="x" * 200)
        assert merge_results(longer, raw_text).raw_text == "x" * 200

    def test_hybrid_equal_length_keeps_structured_text(
        self, structured: StructuredExtraction
    ) -> None:
        a = dataclasses.replace(structured, extracted_text="AAAA")
        b = RawTextResult(text="BBBB", confidence=50)
        assert merge_results(a, b).raw_text == "AAAA"

    def test_hybrid_keeps_structured_extracted_text(
        self, structured: StructuredExtraction, raw_text: RawTextResult
    ) -> None:
        result = merge_results(structured, raw_text)
        assert result.extracted_text == structured.extracted_text

    def test_result_is_immutable(self, structured: StructuredExtraction) -> None:
        result = merge_results(structured, None)
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.confidence = 10  # type: ignore[misc]


def _engine(
    config: AppConfig,
    structured: object = None,
    raw: object = None,
) -> tuple[FusionEngine, AsyncMock, AsyncMock]:
    """Build an engine around mocked providers.

    ``structured`` and ``raw`` are either return values or exceptions.
    """
    structured_provider = AsyncMock()
    text_provider = AsyncMock()
    if isinstance(structured, BaseException):
        structured_provider.extract.side_effect = structured
    else:
        structured_provider.extract.return_value = structured
    if isinstance(raw, BaseException):
        text_provider.detect_text.side_effect = raw
    else:
        text_provider.detect_text.return_value = raw

    engine = FusionEngine(
        config,
        client=AsyncMock(),
        structured_provider=structured_provider,
        text_provider=text_provider,
    )
    return engine, structured_provider, text_provider


class TestFusionEngine:
    """Tests for the concurrent extraction pipeline."""

    @pytest.mark.asyncio
    async def test_rejects_request_without_image(self, app_config: AppConfig) -> None:
        engine, a, b = _engine(app_config)
        with pytest.raises(ValidationError):
            await engine.extract(ExtractionRequest())
        a.extract.assert_not_called()
        b.detect_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_strings_count_as_absent(self, app_config: AppConfig) -> None:
        engine, a, b = _engine(app_config)
        with pytest.raises(ValidationError):
            await engine.extract(ExtractionRequest(image_url="", image_base64=""))
        a.extract.assert_not_called()
        b.detect_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_both_succeed(
        self,
        app_config: AppConfig,
        structured: StructuredExtraction,
        raw_text: RawTextResult,
    ) -> None:
        engine, a, b = _engine(app_config, structured, raw_text)
        request = ExtractionRequest(image_url="https://example.com/tv.jpg")

        result = await engine.extract(request)

        assert result.provider == "hybrid"
        assert result.confidence == 95
        assert result.metadata.processing_time >= 0
        a.extract.assert_awaited_once_with(request)
        b.detect_text.assert_awaited_once_with(request)

    @pytest.mark.asyncio
    async def test_text_provider_failure_degrades_to_structured(
        self, app_config: AppConfig, structured: StructuredExtraction
    ) -> None:
        engine, _, _ = _engine(
            app_config, structured, ProviderUnavailable("google-style", "HTTP 500")
        )
        result = await engine.extract(ExtractionRequest(image_base64="aGVsbG8="))
        assert result.provider == "openai-style"
        assert result.metadata.structure_confidence == structured.confidence
        assert result.metadata.text_confidence == structured.confidence

    @pytest.mark.asyncio
    async def test_structured_failure_degrades_to_text(
        self, app_config: AppConfig, raw_text: RawTextResult
    ) -> None:
        engine, _, _ = _engine(app_config, RuntimeError("boom"), raw_text)
        result = await engine.extract(ExtractionRequest(image_base64="aGVsbG8="))
        assert result.provider == "google-style"
        assert result.metadata.structure_confidence == 0

    @pytest.mark.asyncio
    async def test_both_fail_returns_default(self, app_config: AppConfig) -> None:
        engine, _, _ = _engine(
            app_config,
            ProviderUnavailable("openai-style", "API key not configured"),
            ValueError("bad json"),
        )
        result = await engine.extract(ExtractionRequest(image_base64="aGVsbG8="))
        assert result.provider == "none"
        assert result.confidence == 0
        assert result.metadata.providers_used == ()

    @pytest.mark.asyncio
    async def test_timeout_is_treated_as_failure(
        self, app_config: AppConfig, raw_text: RawTextResult
    ) -> None:
        async def hang(request: ExtractionRequest) -> StructuredExtraction:
            await asyncio.sleep(10)
            raise AssertionError("should have timed out")

        engine, a, _ = _engine(app_config, None, raw_text)
        a.extract.side_effect = hang

        result = await engine.extract(ExtractionRequest(image_base64="aGVsbG8="))
        assert result.provider == "google-style"
        assert result.confidence == raw_text.confidence

    @pytest.mark.asyncio
    async def test_providers_run_concurrently(
        self,
        app_config: AppConfig,
        structured: StructuredExtraction,
        raw_text: RawTextResult,
    ) -> None:
        started: list[str] = []
        both_started = asyncio.Event()

        async def slow_structured(request: ExtractionRequest) -> StructuredExtraction:
            started.append("structured")
            if len(started) == 2:
                both_started.set()
            await asyncio.wait_for(both_started.wait(), timeout=0.4)
            return structured

        async def slow_text(request: ExtractionRequest) -> RawTextResult:
            started.append("text")
            if len(started) == 2:
                both_started.set()
            await asyncio.wait_for(both_started.wait(), timeout=0.4)
            return raw_text

        engine, a, b = _engine(app_config)
        a.extract.side_effect = slow_structured
        b.detect_text.side_effect = slow_text

        result = await engine.extract(ExtractionRequest(image_base64="aGVsbG8="))
        assert result.provider == "hybrid"

    @pytest.mark.asyncio
    async def test_request_is_not_mutated(
        self, app_config: AppConfig, structured: StructuredExtraction
    ) -> None:
        engine, _, _ = _engine(app_config, structured, None)
        request = ExtractionRequest(image_url="https://example.com/a.jpg")
        await engine.extract(request)
        assert request == ExtractionRequest(image_url="https://example.com/a.jpg")
