"""
Unit tests -- Dashboard service: cache, retries, fallbacks, repair.
A scripted collaborator stands in for the LLM so nothing leaves the process.
"""
import json

import pytest

from src.dashboard import service as service_module
from src.dashboard.ai_service import CollaboratorError, FallbackRequested
from src.dashboard.cache import ResultCache
from src.dashboard.refiner import NoDashboardError
from src.dashboard.service import DashboardService, GenerationInputError
from src.dashboard.spec import ColumnSchema, DashboardSpec, Visual


SCHEMA = [
    ColumnSchema(name="Date", type="date", data_type="date"),
    ColumnSchema(name="Region", type="dimension", data_type="string"),
    ColumnSchema(name="Sales", type="measure", data_type="number"),
]

ROWS = [
    {"Date": "2024-01-01", "Region": "East", "Sales": 100},
    {"Date": "2024-02-01", "Region": "West", "Sales": 50},
]

AI_SPEC = {
    "title": "AI Dashboard",
    "visuals": [{
        "id": "v1", "type": "bar", "title": "Revenue by region",
        "metrics": ["SUM(Revenue)"], "dimensions": ["region"],
    }],
}


class ScriptedCollaborator:
    """Returns (or raises) queued outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def _next(self):
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else FallbackRequested("exhausted")
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def generate(self, schema, rows, prompt):
        return self._next()

    def refine(self, current, schema, rows, instruction, history=()):
        return self._next()

    def insights(self, spec, schema, rows):
        return self._next()


def _service(*outcomes):
    sleeps = []
    svc = DashboardService(
        cache=ResultCache(ttl=60),
        collaborator=ScriptedCollaborator(*outcomes),
        sleep=sleeps.append,
    )
    svc.max_retries = 2
    svc.backoff = 1.0
    return svc, sleeps


# ── Input validation ────────────────────────────────────

def test_empty_schema_rejected():
    svc, _ = _service()
    with pytest.raises(GenerationInputError):
        svc.generate([], ROWS, "sales by region")


def test_short_prompt_rejected():
    svc, _ = _service()
    with pytest.raises(GenerationInputError):
        svc.generate(SCHEMA, ROWS, "  hi ")


# ── AI path ─────────────────────────────────────────────

def test_ai_spec_is_repaired():
    svc, sleeps = _service(AI_SPEC)
    result = svc.generate(SCHEMA, ROWS, "sales by region")
    assert result.source == "ai"
    assert result.attempts == 1
    assert result.spec.visuals[0].metrics == ["SUM(Sales)"]
    assert result.spec.visuals[0].dimensions == ["Region"]
    assert result.repair_notes
    assert sleeps == []


def test_transport_errors_retried_with_backoff():
    svc, sleeps = _service(CollaboratorError("down"), CollaboratorError("down"), AI_SPEC)
    result = svc.generate(SCHEMA, ROWS, "sales by region")
    assert result.source == "ai"
    assert result.attempts == 3
    assert sleeps == [1.0, 2.0]


def test_retries_exhausted_uses_local_generator():
    svc, sleeps = _service(*[CollaboratorError("down")] * 3)
    result = svc.generate(SCHEMA, ROWS, "sales by region")
    assert result.source == "robust"
    assert svc.collaborator.calls == 3
    assert sleeps == [1.0, 2.0]
    assert result.intent is not None


def test_fallback_signal_skips_retries():
    svc, sleeps = _service(FallbackRequested("mock"))
    result = svc.generate(SCHEMA, ROWS, "sales by region")
    assert result.source == "robust"
    assert svc.collaborator.calls == 1
    assert sleeps == []
    assert result.spec.visuals


def test_terminal_fallback(monkeypatch):
    def boom(schema, rows, prompt):
        raise RuntimeError("generator broke")

    monkeypatch.setattr(service_module, "generate_robust_dashboard", boom)
    svc, _ = _service(FallbackRequested("mock"))
    result = svc.generate(SCHEMA, ROWS, "sales by region")
    assert result.source == "fallback"
    assert result.spec.title == "Analysis Dashboard"


# ── Cache ───────────────────────────────────────────────

def test_ai_result_cached():
    svc, _ = _service(AI_SPEC)
    first = svc.generate(SCHEMA, ROWS, "sales by region")
    second = svc.generate(SCHEMA, ROWS, "  Sales BY region ")
    assert second.source == "cache"
    assert second.spec == first.spec
    assert svc.collaborator.calls == 1


def test_cached_spec_is_a_copy():
    svc, _ = _service(AI_SPEC)
    svc.generate(SCHEMA, ROWS, "sales by region").spec.title = "mutated"
    assert svc.generate(SCHEMA, ROWS, "sales by region").spec.title == "AI Dashboard"


def test_local_results_not_cached():
    svc, _ = _service()
    svc.generate(SCHEMA, ROWS, "sales by region")
    assert svc.generate(SCHEMA, ROWS, "sales by region").source == "robust"
    assert len(svc.cache) == 0


# ── Refinement & insights ───────────────────────────────

def _current():
    return DashboardSpec(title="Sales", visuals=[
        Visual(id="v1", type="bar", title="By region", metrics=["SUM(Sales)"], dimensions=["Region"]),
    ])


def test_refine_without_dashboard():
    svc, _ = _service()
    with pytest.raises(NoDashboardError):
        svc.refine(None, SCHEMA, ROWS, "make it a pie")


def test_refine_local_fallback():
    svc, _ = _service(FallbackRequested("mock"))
    result = svc.refine(_current(), SCHEMA, ROWS, "make it a pie")
    assert result.source == "local"
    assert result.spec.visuals[0].type == "pie"


def test_refine_ai_result_repaired():
    svc, _ = _service((AI_SPEC, "Switched metric"))
    result = svc.refine(_current(), SCHEMA, ROWS, "use revenue")
    assert result.source == "ai"
    assert result.message == "Switched metric"
    assert isinstance(result.spec, DashboardSpec)
    assert result.spec.visuals[0].metrics == ["SUM(Sales)"]


def test_insights_fall_back_locally():
    svc, _ = _service(CollaboratorError("down"))
    insights, source = svc.insights(_current(), SCHEMA, ROWS)
    assert source == "local"
    assert insights[0].startswith("Total Sales")


def test_analyze():
    svc, _ = _service()
    schema, report = svc.analyze(ROWS)
    assert [c.name for c in schema] == ["Date", "Region", "Sales"]
    assert report.total_rows == 2


def test_non_finite_limits_in_ai_reply_do_not_break_generation():
    reply = json.loads(
        '{"title": "D", "visuals": [{"id": "v1", "type": "bar", "title": "t",'
        ' "metrics": ["SUM(Sales)"], "topN": Infinity}]}'
    )
    svc, _ = _service(reply)
    result = svc.generate(SCHEMA, ROWS, "show sales")
    assert result.source == "ai"
    assert result.spec.visuals[0].top_n is None


def test_zero_capacity_cache_still_generates():
    svc = DashboardService(
        cache=ResultCache(ttl=60, max_size=0),
        collaborator=ScriptedCollaborator(AI_SPEC),
        sleep=lambda _: None,
    )
    result = svc.generate(SCHEMA, ROWS, "sales by region")
    assert result.source == "ai"
    assert len(svc.cache) == 0


def test_simple_strategy_skips_cache_and_collaborator():
    svc, _ = _service(AI_SPEC)
    result = svc.generate(SCHEMA, ROWS, "sales by region", strategy="simple")
    assert result.source == "simple"
    assert svc.collaborator.calls == 0
    assert len(svc.cache) == 0
    assert result.spec.title == "Sales Performance Dashboard"
    assert result.spec.visuals[0].type == "card"
