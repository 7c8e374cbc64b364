"""
BI export mapping helpers.

Translates finished dashboard visuals into the vocabulary of a BI
authoring tool: a visual-type name per chart kind and an aggregation
formula per ``AGG(column)`` metric.  Writing export files is out of scope.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from src.dashboard.spec import Aggregation, DashboardSpec, Visual, parse_metric

DEFAULT_TABLE = "Data"

VISUAL_TYPE_MAP: dict[str, tuple[str, str]] = {
    "card": ("Card", "Single value KPI card"),
    "bar": ("Clustered Bar Chart", "Horizontal bar comparison"),
    "line": ("Line Chart", "Trend over time"),
    "pie": ("Pie Chart", "Part-to-whole distribution"),
    "combo": ("Line and Clustered Column Chart", "Dual-axis comparison"),
    "area": ("Area Chart", "Cumulative trend visualization"),
    "scatter": ("Scatter Chart", "Correlation analysis"),
    "histogram": ("Histogram", "Frequency distribution"),
    "heatmap": ("Matrix", "Cross-tabulated heat values"),
    "waterfall": ("Waterfall Chart", "Sequential gains/losses"),
    "gauge": ("Gauge", "Progress toward a goal"),
    "table": ("Table", "Detailed data grid"),
    "funnel": ("Funnel", "Conversion pipeline"),
    "bullet": ("Bullet Chart (Custom Visual)", "Actual vs target"),
    "treemap": ("Treemap", "Hierarchical proportions"),
}

_FORMULA_FUNCTION = {
    Aggregation.SUM: "SUM",
    Aggregation.AVG: "AVERAGE",
    Aggregation.COUNT: "COUNT",
    Aggregation.MIN: "MIN",
    Aggregation.MAX: "MAX",
}

_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_]")


@dataclass
class MeasureFormula:
    name: str
    formula: str
    format_string: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "formula": self.formula, "formatString": self.format_string}


def bi_visual_type(chart_type: str) -> str:
    return VISUAL_TYPE_MAP.get(chart_type, ("Table", "Data table"))[0]


def _format_string(column: str, aggregation: Aggregation) -> str:
    lower = column.lower()
    if aggregation is Aggregation.AVG:
        return "#,##0.00"
    if "percent" in lower or "rate" in lower:
        return "0.00%"
    if any(w in lower for w in ("price", "revenue", "sales", "amount")):
        return "$#,##0.00"
    return "#,##0"


def metric_formula(metric: str, table: str = DEFAULT_TABLE) -> MeasureFormula:
    """``"AVG(Price)"`` -> ``AVERAGE('Data'[Price])``."""
    ref = parse_metric(metric)
    return MeasureFormula(
        name=f"{ref.aggregation.value.title()} {_UNSAFE_RE.sub('_', ref.column)}",
        formula=f"{_FORMULA_FUNCTION[ref.aggregation]}('{table}'[{ref.column}])",
        format_string=_format_string(ref.column, ref.aggregation),
    )


def describe_visual(visual: Visual, table: str = DEFAULT_TABLE) -> dict[str, Any]:
    bi_type, description = VISUAL_TYPE_MAP.get(visual.type, ("Table", "Data table"))
    return {
        "name": visual.title,
        "type": visual.type,
        "biType": bi_type,
        "description": description,
        "axis": list(visual.dimensions),
        "values": [metric_formula(m, table).to_dict() for m in visual.metrics],
        "topN": visual.top_n,
    }


def describe_dashboard(spec: DashboardSpec, table: str = DEFAULT_TABLE) -> dict[str, Any]:
    return {
        "title": spec.title,
        "visuals": [describe_visual(v, table) for v in spec.visuals],
    }
