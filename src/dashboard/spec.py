"""
Dashboard specification models -- the structured contract between a prompt,
the generators, the repairer and any renderer.

The JSON wire format uses camelCase keys (``dataType``, ``sampleValues``,
``topN``); Python code uses the snake_case attribute names.  Metric strings
keep the ``AGG(column)`` convention on the wire and are decomposed into a
:class:`MetricRef` wherever they are interpreted.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# ── Value types ─────────────────────────────────────────

CellValue = Union[str, float, int, None]
DataRow = dict[str, CellValue]

ColumnType = Literal["measure", "dimension", "date"]
DataType = Literal["number", "string", "date"]
SortOrder = Literal["asc", "desc"]
ChartType = Literal[
    "card", "bar", "line", "pie", "combo", "area", "scatter", "histogram",
    "heatmap", "waterfall", "gauge", "table", "funnel", "bullet", "treemap",
]

CHART_TYPES: tuple[str, ...] = (
    "card", "bar", "line", "pie", "combo", "area", "scatter", "histogram",
    "heatmap", "waterfall", "gauge", "table", "funnel", "bullet", "treemap",
)


class Aggregation(str, Enum):
    SUM = "SUM"
    AVG = "AVG"
    COUNT = "COUNT"
    MIN = "MIN"
    MAX = "MAX"


_METRIC_RE = re.compile(r"(SUM|AVG|COUNT|MIN|MAX)\(([^)]+)\)", re.IGNORECASE)


@dataclass(frozen=True)
class MetricRef:
    """A decomposed ``AGG(column)`` metric."""
    aggregation: Aggregation
    column: str

    def __str__(self) -> str:
        return f"{self.aggregation.value}({self.column})"


def parse_metric(metric: str) -> MetricRef:
    """Decompose a metric string; a bare column name aggregates with SUM."""
    if not isinstance(metric, str):
        raise TypeError(f"Metric must be a string, got {type(metric).__name__}")
    match = _METRIC_RE.search(metric)
    if match:
        return MetricRef(Aggregation(match.group(1).upper()), match.group(2).strip())
    return MetricRef(Aggregation.SUM, metric.strip())


def metric_column(metric: str) -> str:
    """Column name inside an ``AGG(column)`` string."""
    return parse_metric(metric).column


# ── Models ──────────────────────────────────────────────


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ColumnSchema(_WireModel):
    """One column of an uploaded dataset, as inferred from its values."""

    name: str
    type: ColumnType
    data_type: DataType = Field(..., alias="dataType")
    sample_values: list[Union[str, float, int]] = Field(
        default_factory=list, alias="sampleValues",
    )


class Visual(_WireModel):
    """A single chart / table bound to dataset columns."""

    id: str
    type: ChartType = "bar"
    title: str
    metrics: list[str] = Field(default_factory=list, description="AGG(column) strings")
    dimensions: list[str] = Field(default_factory=list)
    filters: dict[str, list[str]] | None = Field(
        None, description="Column -> allow-list of values",
    )
    sort: SortOrder | None = None
    top_n: int | None = Field(None, alias="topN", gt=0)
    bins: int | None = Field(None, gt=0)

    def metric_refs(self) -> list[MetricRef]:
        return [parse_metric(m) for m in self.metrics]


class DashboardSpec(_WireModel):
    title: str
    visuals: list[Visual] = Field(default_factory=list)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ChatMessage(_WireModel):
    id: str = ""
    role: Literal["user", "assistant"]
    content: str
    timestamp: float | None = None


# ── Schema helpers ──────────────────────────────────────


def measures(schema: list[ColumnSchema]) -> list[ColumnSchema]:
    return [c for c in schema if c.type == "measure"]


def dimensions(schema: list[ColumnSchema]) -> list[ColumnSchema]:
    return [c for c in schema if c.type == "dimension"]


def dates(schema: list[ColumnSchema]) -> list[ColumnSchema]:
    return [c for c in schema if c.type == "date"]


def column_names(schema: list[ColumnSchema]) -> list[str]:
    return [c.name for c in schema]
