"""
Unit tests -- Dashboard synthesis (keyword, intent-driven, fallback).
"""
import pytest

from src.dashboard.repair import find_spec_issues
from src.dashboard.spec import ColumnSchema
from src.dashboard.synthesizer import (
    MAX_VISUALS,
    generate_dashboard_spec,
    generate_fallback_dashboard,
    generate_robust_dashboard,
)


SCHEMA = [
    ColumnSchema(name="Date", type="date", data_type="date"),
    ColumnSchema(name="Region", type="dimension", data_type="string"),
    ColumnSchema(name="Product", type="dimension", data_type="string"),
    ColumnSchema(name="Sales", type="measure", data_type="number"),
    ColumnSchema(name="Profit", type="measure", data_type="number"),
]
NO_MEASURES = [
    ColumnSchema(name=f"c{i}", type="dimension", data_type="string") for i in range(7)
]


def _types(spec):
    return [v.type for v in spec.visuals]


# ── Keyword generator ───────────────────────────────────

def test_keyword_comparison():
    spec = generate_dashboard_spec(SCHEMA, "Show sales by region")
    assert _types(spec) == ["card", "bar", "card"]
    assert spec.visuals[1].dimensions == ["Region"]
    assert spec.visuals[2].metrics == ["SUM(Profit)"]
    assert spec.title == "Sales Performance Dashboard"


def test_keyword_time_gives_line_without_bar():
    spec = generate_dashboard_spec(SCHEMA, "sales trend over time")
    assert _types(spec) == ["card", "line", "card"]
    assert spec.visuals[1].dimensions == ["Date"]
    assert spec.visuals[1].sort == "asc"


def test_keyword_pie_and_table():
    spec = generate_dashboard_spec(SCHEMA, "top products distribution")
    assert _types(spec) == ["card", "bar", "pie", "table", "card"]
    assert spec.visuals[1].dimensions == ["Product"]


def test_keyword_only_card_gets_defaults():
    schema = [c for c in SCHEMA if c.type != "date"]
    spec = generate_dashboard_spec(schema, "monthly trend")
    assert _types(spec) == ["card", "bar", "pie", "card"]


def test_keyword_capped():
    spec = generate_dashboard_spec(SCHEMA, "top sales by region and product over time distribution")
    assert len(spec.visuals) <= MAX_VISUALS
    assert spec.visuals[0].type == "card"


def test_keyword_ids_sequential():
    spec = generate_dashboard_spec(SCHEMA, "Show sales by region")
    assert [v.id for v in spec.visuals] == ["v1", "v2", "v3"]


# ── Intent-driven generator ─────────────────────────────

def test_robust_trend():
    spec = generate_robust_dashboard(SCHEMA, [], "Show sales trend over the last 12 months")
    assert _types(spec) == ["card", "line", "area", "table"]
    assert spec.visuals[1].dimensions == ["Date"]
    assert spec.title == "Sales Trend Analysis"


def test_robust_comparison():
    spec = generate_robust_dashboard(SCHEMA, [], "Compare profit by region")
    assert _types(spec) == ["card", "bar", "table"]
    assert spec.visuals[1].top_n == 10
    assert spec.title == "Profit Comparison by Region"


def test_robust_correlation_uses_two_metrics():
    spec = generate_robust_dashboard(SCHEMA, [], "correlation and relationship of sales and profit")
    scatter = spec.visuals[1]
    assert scatter.type == "scatter"
    assert scatter.metrics == ["SUM(Sales)", "SUM(Profit)"]


def test_robust_outliers_honour_direction():
    spec = generate_robust_dashboard(SCHEMA, [], "Show the bottom 3 regions")
    assert _types(spec) == ["card", "table", "bar", "table"]
    ranked = spec.visuals[1]
    assert ranked.sort == "asc"
    assert ranked.top_n == 3


def test_robust_distribution_histogram():
    spec = generate_robust_dashboard(SCHEMA, [], "spread and frequency of sales")
    assert spec.visuals[1].type == "histogram"
    assert spec.visuals[1].bins == 10


def test_robust_detail_table():
    spec = generate_robust_dashboard(SCHEMA, [], "Compare profit by region")
    table = spec.visuals[-1]
    assert table.title == "Detailed Data"
    assert table.top_n == 20
    assert table.sort == "desc"


@pytest.mark.parametrize("prompt", [
    "Show sales trend over the last 12 months",
    "Compare sales by region",
    "Breakdown of revenue split by category",
    "anything at all",
    "top 5 best products",
])
def test_robust_always_renderable(prompt):
    spec = generate_robust_dashboard(SCHEMA, [], prompt)
    assert len(spec.visuals) >= 2
    assert spec.visuals[0].type == "card"
    assert find_spec_issues(spec, SCHEMA) == []


# ── Fallback generator ──────────────────────────────────

def test_fallback_dashboard():
    spec = generate_fallback_dashboard(SCHEMA, "whatever", RuntimeError("boom"))
    assert _types(spec) == ["card", "card", "bar", "line", "pie", "table"]
    assert spec.title == "Analysis Dashboard"


def test_fallback_without_prompt():
    assert generate_fallback_dashboard(SCHEMA).title == "Summary Dashboard"


def test_fallback_measure_only():
    schema = [ColumnSchema(name="Sales", type="measure", data_type="number")]
    spec = generate_fallback_dashboard(schema)
    assert _types(spec) == ["card", "table"]


# ── Zero measures ───────────────────────────────────────

@pytest.mark.parametrize("generate", [
    lambda s: generate_dashboard_spec(s, "show everything"),
    lambda s: generate_robust_dashboard(s, [], "show everything"),
    lambda s: generate_fallback_dashboard(s, "show everything"),
])
def test_zero_measures_preview(generate):
    spec = generate(NO_MEASURES)
    assert spec.title == "Data Preview"
    assert len(spec.visuals) == 1
    table = spec.visuals[0]
    assert table.type == "table"
    assert table.dimensions == ["c0", "c1", "c2", "c3", "c4"]
    assert table.top_n == 100
