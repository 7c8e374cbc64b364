"""
Intent classification -- maps a free-text prompt to one analytical intent.

Each intent owns a list of trigger patterns (see ``rules/prompt_rules.yml``).
The intent with the most triggers firing wins; ties go to the intent listed
first, and ``summary`` (listed last) is the default when nothing fires.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from src.core.logging import get_logger
from src.dashboard.rules import PromptRules, load_rules
from src.dashboard.spec import ColumnSchema

logger = get_logger(__name__)


class Intent(str, Enum):
    TREND = "trend"
    COMPARISON = "comparison"
    BREAKDOWN = "breakdown"
    CORRELATION = "correlation"
    OUTLIERS = "outliers"
    DISTRIBUTION = "distribution"
    SUMMARY = "summary"


@dataclass(frozen=True)
class IntentResult:
    type: Intent
    confidence: float
    reasoning: str
    match_count: int = 0

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "confidence": round(self.confidence, 2),
            "reasoning": self.reasoning,
        }


def confidence_for(match_count: int) -> float:
    return min(0.95, 0.5 + 0.15 * match_count)


def classify_intent(
    prompt: str,
    schema: list[ColumnSchema] | None = None,
    rules: PromptRules | None = None,
) -> IntentResult:
    """Classify *prompt* into an :class:`Intent` by keyword scoring.

    *schema* is accepted for disambiguation by callers that have one; the
    keyword rules alone decide today.
    """
    rules = rules or load_rules()
    text = prompt.lower()

    best = Intent.SUMMARY
    best_score = 0
    for rule in rules.intents:
        score = rule.score(text)
        if score > best_score:
            best, best_score = Intent(rule.name), score

    # "sales by region" reads as a comparison unless something stronger fired
    if best is Intent.SUMMARY and rules.by_pattern.search(text):
        best, best_score = Intent.COMPARISON, 1

    result = IntentResult(
        type=best,
        confidence=confidence_for(best_score),
        reasoning=f"Detected {best.value} intent based on keyword analysis",
        match_count=best_score,
    )
    logger.info("Intent classified: %s (score=%d)", best.value, best_score)
    return result
