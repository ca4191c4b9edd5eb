"""Review policy for fused extraction results.

Decides whether a result can be applied to the asset form automatically or
needs manual confirmation, assigns display badges per field, and validates
user corrections before they are folded back into a new result.
"""

import dataclasses
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any

from src.extraction.models import CATEGORY_VALUES, FusedResult, Provider
from src.utils.config import ReviewConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

TEXT_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "brand",
    "model",
    "serial_number",
    "extracted_text",
)
EDITABLE_FIELDS: tuple[str, ...] = TEXT_FIELDS + ("category", "estimated_value")
RAW_TEXT_FIELDS = frozenset({"extracted_text", "raw_text"})


class ConfidenceBand(StrEnum):
    """Badge level shown next to a confidence score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class ValidationResult:
    """Result of validating a single user correction."""

    field_name: str
    is_valid: bool
    message: str
    rule_name: str


@dataclass
class ReviewField:
    """One field as presented for review."""

    field_name: str
    value: Any
    confidence: float
    band: ConfidenceBand


@dataclass
class ReviewDecision:
    """Outcome of applying the review policy to a fused result."""

    auto_apply: bool
    band: ConfidenceBand
    message: str
    fields: list[ReviewField] = field(default_factory=list)


class ReviewPolicy:
    """Gating and badge rules for the form-filling consumer.

    Args:
        config: Threshold configuration.
    """

    def __init__(self, config: ReviewConfig | None = None) -> None:
        self.config = config or ReviewConfig()

    def band(self, confidence: float) -> ConfidenceBand:
        """Map a confidence score to its badge level."""
        if confidence >= self.config.auto_apply_threshold:
            return ConfidenceBand.HIGH
        if confidence >= self.config.warning_threshold:
            return ConfidenceBand.MEDIUM
        return ConfidenceBand.LOW

    def field_confidence(self, result: FusedResult, field_name: str) -> float:
        """Confidence displayed for one field.

        Every field shows the overall score, except the recognized text,
        which shows the text sub-confidence when one was recorded.
        """
        if field_name in RAW_TEXT_FIELDS and result.metadata.text_confidence:
            return result.metadata.text_confidence
        return result.confidence

    def decide(self, result: FusedResult) -> ReviewDecision:
        """Decide between auto-apply and manual review.

        Args:
            result: Fused extraction result.

        Returns:
            The decision with per-field badges.
        """
        fields = []
        for name in EDITABLE_FIELDS:
            confidence = self.field_confidence(result, name)
            fields.append(
                ReviewField(
                    field_name=name,
                    value=getattr(result, name),
                    confidence=confidence,
                    band=self.band(confidence),
                )
            )

        if result.provider == Provider.NONE:
            auto_apply = False
            message = "No provider returned a result; enter the item details manually"
        elif result.confidence >= self.config.auto_apply_threshold:
            auto_apply = True
            message = f"Applied automatically at {result.confidence:.0f}% confidence"
        else:
            auto_apply = False
            message = (
                f"Review needed: confidence {result.confidence:.0f}% is below "
                f"{self.config.auto_apply_threshold}%"
            )

        logger.info(
            "Review decision for %s result: %s",
            result.provider,
            "auto-apply" if auto_apply else "manual review",
        )
        return ReviewDecision(
            auto_apply=auto_apply,
            band=self.band(result.confidence),
            message=message,
            fields=fields,
        )

    def apply_corrections(
        self, result: FusedResult, corrections: dict[str, Any]
    ) -> tuple[FusedResult, list[ValidationResult]]:
        """Validate user edits and apply the valid ones.

        Args:
            result: Fused result under review. Never mutated.
            corrections: Field name to corrected value.

        Returns:
            A new result with the valid edits applied, and one validation
            result per submitted field.
        """
        results: list[ValidationResult] = []
        accepted: dict[str, Any] = {}

        for field_name, value in corrections.items():
            check, cleaned = self._validate_field(field_name, value)
            results.append(check)
            if check.is_valid:
                accepted[field_name] = cleaned

        rejected = sum(1 for r in results if not r.is_valid)
        if rejected:
            logger.info("Rejected %d of %d corrections", rejected, len(results))

        return dataclasses.replace(result, **accepted), results

    def _validate_field(
        self, field_name: str, value: Any
    ) -> tuple[ValidationResult, Any]:
        if field_name not in EDITABLE_FIELDS:
            return (
                ValidationResult(
                    field_name, False, f"Unknown field: {field_name}", "known_field"
                ),
                None,
            )
        if field_name == "category":
            return self._validate_category(value)
        if field_name == "estimated_value":
            return self._validate_value(value)
        if not isinstance(value, str):
            result = ValidationResult(field_name, False, "Value must be text", "text")
            return result, None
        return ValidationResult(field_name, True, "Accepted", "text"), value.strip()

    def _validate_category(self, value: Any) -> tuple[ValidationResult, Any]:
        cleaned = str(value).strip().lower() if value is not None else ""
        if cleaned in CATEGORY_VALUES:
            return ValidationResult("category", True, "Accepted", "category"), cleaned
        return (
            ValidationResult(
                "category", False, f"Unknown category: {value}", "category"
            ),
            None,
        )

    def _validate_value(self, value: Any) -> tuple[ValidationResult, Any]:
        if isinstance(value, bool):
            amount = None
        else:
            try:
                amount = Decimal(str(value).replace(",", "").replace("$", ""))
            except InvalidOperation:
                amount = None

        if amount is None or not amount.is_finite():
            return (
                ValidationResult(
                    "estimated_value",
                    False,
                    f"Invalid amount: {value}",
                    "non_negative_amount",
                ),
                None,
            )
        if amount < 0:
            return (
                ValidationResult(
                    "estimated_value",
                    False,
                    f"Amount must not be negative: {amount}",
                    "non_negative_amount",
                ),
                None,
            )
        return (
            ValidationResult(
                "estimated_value", True, "Accepted", "non_negative_amount"
            ),
            float(amount),
        )
