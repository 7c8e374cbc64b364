"""
Contextual chat suggestions.

Looks at the current dashboard and the schema and proposes follow-up
refinement instructions (chart swaps, top-N, sorting, missing visuals,
unused columns, layout), ranked by priority.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from src.dashboard.spec import ColumnSchema, DashboardSpec, dates, dimensions, measures, metric_column

MAX_SUGGESTIONS = 8


@dataclass
class ChatSuggestion:
    text: str
    category: str  # chart | filter | layout | style | data
    priority: int

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "category": self.category, "priority": self.priority}


def generate_contextual_suggestions(
    spec: DashboardSpec,
    schema: list[ColumnSchema],
    exclude: Iterable[str] = (),
) -> list[ChatSuggestion]:
    """Top suggestions for *spec*, highest priority first, skipping texts in *exclude*."""
    types = {v.type for v in spec.visuals}
    measure_cols = measures(schema)
    dim_cols = dimensions(schema)
    date_cols = dates(schema)
    out: list[ChatSuggestion] = []

    def add(text: str, category: str, priority: int) -> None:
        out.append(ChatSuggestion(text, category, priority))

    # ── Chart swaps ──
    if "bar" in types and "pie" not in types:
        add("Change bar chart to pie chart", "chart", 10)
    if "pie" in types and "bar" not in types:
        add("Change pie chart to bar chart", "chart", 10)
    if "bar" in types and "line" not in types and date_cols:
        add("Show as a line chart to see trends", "chart", 9)
    if "line" in types and "area" not in types:
        add("Change to area chart for better visualization", "chart", 8)

    # ── Filtering / ranking ──
    if date_cols:
        add("Filter to last 6 months", "filter", 9)
        add("Show only this year's data", "filter", 8)
    if any(v.dimensions and not v.top_n and v.type in ("bar", "pie", "table") for v in spec.visuals):
        add("Show only top 5 items", "data", 9)
        add("Show top 10 by value", "data", 8)
    if any(not v.sort and v.type in ("bar", "table") for v in spec.visuals):
        add("Sort by value descending", "data", 7)
        add("Sort in ascending order", "data", 6)

    # ── Missing visuals ──
    if "card" not in types and measure_cols:
        add("Add KPI cards for key metrics", "layout", 8)
    if "table" not in types and len(spec.visuals) > 2:
        add("Add a detailed data table", "layout", 7)
    if "line" not in types and date_cols and measure_cols:
        add("Add a trend chart over time", "chart", 8)

    # ── Unused columns ──
    used_dims = {d for v in spec.visuals for d in v.dimensions}
    unused_dim = next((d for d in dim_cols if d.name not in used_dims), None)
    if unused_dim:
        add(f"Break down by {unused_dim.name}", "data", 7)
    used_measures = {metric_column(m) for v in spec.visuals for m in v.metrics}
    unused_measure = next((m for m in measure_cols if m.name not in used_measures), None)
    if unused_measure:
        add(f"Add {unused_measure.name} to the dashboard", "data", 6)

    # ── Layout ──
    if len(spec.visuals) > 4:
        add("Simplify - keep only the most important charts", "layout", 5)
    if len(spec.visuals) < 3:
        add("Add more visualizations for a complete view", "layout", 5)
    if "bar" in types and len(measure_cols) >= 2 and "combo" not in types:
        add("Create a combo chart with two metrics", "chart", 6)
    if sum(1 for v in spec.visuals if v.type == "card") > 3:
        add("Remove some KPI cards to reduce clutter", "layout", 4)
    add("Rename the dashboard title", "style", 3)

    skip = set(exclude)
    ranked = sorted((s for s in out if s.text not in skip), key=lambda s: s.priority, reverse=True)
    return ranked[:MAX_SUGGESTIONS]
