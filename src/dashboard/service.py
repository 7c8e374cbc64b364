"""
Dashboard service -- orchestrates cache -> collaborator -> repair -> fallbacks.

Generation order:
  1. Cache lookup on (schema signature, normalized prompt).
  2. AI collaborator, retried on transport errors with linear backoff.
  3. Intent-driven local generator when the collaborator asks for a
     fallback or keeps failing.
  4. Terminal schema-only fallback when even that raises.

Every spec that leaves this module has been through ``repair_spec``.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Sequence

from src.core.config import get_settings
from src.core.logging import get_logger, kv
from src.core.utils import timer
from src.dashboard.ai_service import AICollaborator, CollaboratorError, FallbackRequested
from src.dashboard.cache import ResultCache
from src.dashboard.insights import generate_insights
from src.dashboard.intent import IntentResult, classify_intent
from src.dashboard.refiner import RefinementResult, refine
from src.dashboard.repair import find_spec_issues, repair_spec
from src.dashboard.spec import ChatMessage, ColumnSchema, DashboardSpec
from src.dashboard.synthesizer import (
    generate_dashboard_spec,
    generate_fallback_dashboard,
    generate_robust_dashboard,
)
from src.dataset.quality import DataQualityReport, validate_data_quality
from src.dataset.schema_detector import detect_schema

logger = get_logger(__name__)

MIN_PROMPT_LENGTH = 3

Strategy = Literal["auto", "simple"]


class GenerationInputError(ValueError):
    """The request cannot produce a dashboard (no schema, prompt too short)."""


@dataclass
class DashboardResult:
    spec: DashboardSpec
    source: str  # ai | cache | robust | fallback | simple
    intent: IntentResult | None = None
    repair_notes: list[str] = field(default_factory=list)
    attempts: int = 0
    latency_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "spec": self.spec.to_wire(),
            "source": self.source,
            "intent": self.intent.to_dict() if self.intent else None,
            "repairNotes": self.repair_notes,
            "attempts": self.attempts,
            "latencyMs": self.latency_ms,
        }


class DashboardService:
    """Process-wide entry point; build once and share.

    Parameters
    ----------
    cache : ResultCache, optional
        Defaults to a cache sized from settings.
    collaborator : AICollaborator, optional
        Defaults to one using the configured LLM provider.
    sleep : callable, optional
        Used between retries; injectable for tests.
    """

    def __init__(
        self,
        cache: ResultCache | None = None,
        collaborator: AICollaborator | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self.cache = cache or ResultCache(
            ttl=settings.cache_ttl_seconds, max_size=settings.cache_max_size,
        )
        self.collaborator = collaborator or AICollaborator()
        self.max_retries = settings.ai_max_retries
        self.backoff = settings.ai_retry_backoff_seconds
        self._sleep = sleep

    # ── Dataset ─────────────────────────────────────────

    def analyze(self, rows: Sequence[dict[str, Any]]) -> tuple[list[ColumnSchema], DataQualityReport]:
        schema = detect_schema(rows)
        return schema, validate_data_quality(rows, schema)

    # ── Generation ──────────────────────────────────────

    def generate(
        self,
        schema: list[ColumnSchema],
        rows: Sequence[dict[str, Any]],
        prompt: str,
        strategy: Strategy = "auto",
    ) -> DashboardResult:
        """Prompt -> repaired dashboard spec.  Never fails once inputs are valid.

        ``strategy="simple"`` skips the cache and the collaborator and uses the
        offline keyword generator.
        """
        if not schema:
            raise GenerationInputError(
                "No data schema detected. Please upload a valid CSV file with headers."
            )
        if not prompt or len(prompt.strip()) < MIN_PROMPT_LENGTH:
            raise GenerationInputError(
                "Please provide a more detailed prompt to generate your dashboard."
            )

        logger.info(
            "Dashboard.generate | %s",
            kv(prompt=prompt, strategy=strategy, columns=len(schema), rows=len(rows)),
        )

        with timer() as t:
            if strategy == "simple":
                result = self._generate_simple(schema, prompt)
            else:
                result = self._generate_auto(schema, rows, prompt)
        result.latency_ms = t["elapsed_ms"]

        logger.info(
            "Dashboard.generate done | %s",
            kv(source=result.source, visuals=len(result.spec.visuals),
               attempts=result.attempts, latency_ms=result.latency_ms),
        )
        return result

    def _generate_with_ai(
        self,
        schema: list[ColumnSchema],
        rows: Sequence[dict[str, Any]],
        prompt: str,
    ) -> DashboardResult | None:
        attempt = 0
        while attempt <= self.max_retries:
            attempt += 1
            try:
                raw = self.collaborator.generate(schema, rows, prompt)
            except FallbackRequested as exc:
                logger.warning("AI returned fallback signal, using local generation: %s", exc)
                return None
            except CollaboratorError as exc:
                logger.warning("AI attempt %d/%d failed: %s", attempt, self.max_retries + 1, exc)
                if attempt <= self.max_retries:
                    self._sleep(self.backoff * attempt)
                continue

            notes = find_spec_issues(raw, schema)
            spec = repair_spec(raw, schema)
            self.cache.put(schema, prompt, spec.model_copy(deep=True))
            return DashboardResult(spec=spec, source="ai", repair_notes=notes, attempts=attempt)

        logger.warning("AI unavailable after %d attempts", attempt)
        return None

    def _generate_auto(
        self,
        schema: list[ColumnSchema],
        rows: Sequence[dict[str, Any]],
        prompt: str,
    ) -> DashboardResult:
        cached = self.cache.get(schema, prompt)
        if cached is not None:
            logger.info("Cache HIT for prompt=%s", prompt[:60])
            return DashboardResult(spec=cached.model_copy(deep=True), source="cache")
        result = self._generate_with_ai(schema, rows, prompt)
        if result is None:
            result = self._generate_locally(schema, rows, prompt)
        return result

    def _generate_simple(self, schema: list[ColumnSchema], prompt: str) -> DashboardResult:
        spec = generate_dashboard_spec(schema, prompt)
        return DashboardResult(
            spec=repair_spec(spec, schema), source="simple",
            repair_notes=find_spec_issues(spec, schema),
        )

    def _generate_locally(
        self,
        schema: list[ColumnSchema],
        rows: Sequence[dict[str, Any]],
        prompt: str,
    ) -> DashboardResult:
        intent = classify_intent(prompt, schema)
        try:
            spec = generate_robust_dashboard(schema, rows, prompt)
            source = "robust"
        except Exception as exc:
            logger.exception("Intent-driven generation failed")
            spec = generate_fallback_dashboard(schema, prompt, exc)
            source = "fallback"
        notes = find_spec_issues(spec, schema)
        return DashboardResult(
            spec=repair_spec(spec, schema), source=source, intent=intent, repair_notes=notes,
        )

    # ── Refinement & insights ───────────────────────────

    def refine(
        self,
        current: DashboardSpec | None,
        schema: list[ColumnSchema],
        rows: Sequence[dict[str, Any]],
        instruction: str,
        history: Sequence[ChatMessage] = (),
    ) -> RefinementResult:
        """Apply *instruction*; the result spec is always repaired."""
        result = refine(current, schema, rows, instruction, history, self.collaborator)
        result.spec = repair_spec(result.spec, schema)
        logger.info("Dashboard.refine | %s", kv(instruction=instruction, source=result.source))
        return result

    def insights(
        self,
        spec: DashboardSpec,
        schema: list[ColumnSchema],
        rows: Sequence[dict[str, Any]],
    ) -> tuple[list[str], str]:
        return generate_insights(spec, rows, schema, self.collaborator)
