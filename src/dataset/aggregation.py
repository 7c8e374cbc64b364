"""
Aggregation engine -- executes a visual's declarative query against raw rows.

Given a list of ``AGG(column)`` metrics and a list of grouping dimensions,
produces chart-ready rows of the form::

    {"name": <first dimension value>, "value": <first metric value>,
     <dimension>: <value>, ..., <metric string>: <aggregate>, ...}

Pipeline: filter -> group -> aggregate -> sort -> top-N.  The rows are
loaded into a pandas DataFrame; output rows are always freshly built and
inputs are never mutated.

Unparseable numeric cells count as ``0`` for SUM / AVG / MIN / MAX (and
therefore stay in AVG's denominator).  COUNT is the group's row count.
Groups keep first-appearance order.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from src.core.logging import get_logger
from src.core.utils import to_text
from src.dashboard.spec import Aggregation, DataRow, MetricRef, Visual, parse_metric
from src.dataset.frame import as_text, parsed, to_frame

logger = get_logger(__name__)

TOTAL_LABEL = "Total"
UNKNOWN_LABEL = "Unknown"
DEFAULT_BINS = 10

AggregatedRow = dict[str, Any]

_REDUCERS = {
    Aggregation.SUM: "sum",
    Aggregation.AVG: "mean",
    Aggregation.MIN: "min",
    Aggregation.MAX: "max",
    Aggregation.COUNT: "size",
}


@dataclass
class AggregationConfig:
    """The query part of a visual."""
    metrics: list[str]
    dimensions: list[str] = field(default_factory=list)
    sort: str | None = None
    top_n: int | None = None
    filters: dict[str, list[str]] | None = None

    @classmethod
    def from_visual(cls, visual: Visual) -> "AggregationConfig":
        return cls(
            metrics=list(visual.metrics),
            dimensions=list(visual.dimensions),
            sort=visual.sort,
            top_n=visual.top_n,
            filters=dict(visual.filters) if visual.filters else None,
        )


# ── Helpers ─────────────────────────────────────────────


def _measure(frame: pd.DataFrame, column: str) -> pd.Series:
    return parsed(frame[column]).fillna(0.0)


def _reduce(values: pd.Series, aggregation: Aggregation) -> float:
    if values.empty:
        return 0.0
    if aggregation is Aggregation.COUNT:
        return float(len(values))
    return float(getattr(values, _REDUCERS[aggregation])())


def _apply_filters(frame: pd.DataFrame, filters: dict[str, list[str]] | None) -> pd.DataFrame:
    if not filters:
        return frame
    keep = pd.Series(True, index=frame.index)
    for column, values in filters.items():
        keep &= as_text(frame[column]).isin({str(v) for v in values})
    return frame[keep]


def calculate_aggregate(rows: Sequence[DataRow], ref: MetricRef) -> float:
    """Aggregate *ref.column* over *rows*; an empty group aggregates to 0."""
    frame = to_frame(rows, [ref.column])
    return _reduce(_measure(frame, ref.column), ref.aggregation)


def _grouped(frame: pd.DataFrame, dimensions: list[str], refs: list[MetricRef]) -> pd.DataFrame:
    """One row per dimension-value combination: key columns k0.., metric columns m0.., rows."""
    work = pd.DataFrame(
        {f"k{i}": as_text(frame[dim], default=UNKNOWN_LABEL) for i, dim in enumerate(dimensions)},
        index=frame.index,
    )
    for j, ref in enumerate(refs):
        work[f"m{j}"] = _measure(frame, ref.column)
    work["rows"] = 1

    named = {f"m{j}": (f"m{j}", _REDUCERS[ref.aggregation]) for j, ref in enumerate(refs)}
    keys = [f"k{i}" for i in range(len(dimensions))]
    return (
        work.groupby(keys, sort=False, dropna=False)
        .agg(rows=("rows", "sum"), **named)
        .reset_index()
    )


# ── Public API ──────────────────────────────────────────


def aggregate(rows: Sequence[DataRow], config: AggregationConfig) -> list[AggregatedRow]:
    """Execute *config* against *rows* and return chart-ready rows."""
    refs = [parse_metric(m) for m in config.metrics]
    columns = [*(config.filters or {}), *config.dimensions, *(ref.column for ref in refs)]
    frame = _apply_filters(to_frame(rows, columns), config.filters)

    # No dimensions -> one grand-total row
    if not config.dimensions:
        total: AggregatedRow = {"name": TOTAL_LABEL, "value": 0.0}
        for metric, ref in zip(config.metrics, refs):
            total[metric] = _reduce(_measure(frame, ref.column), ref.aggregation)
        if config.metrics:
            total["value"] = total[config.metrics[0]]
        return [total]

    results: list[AggregatedRow] = []
    if not frame.empty:
        for group in _grouped(frame, config.dimensions, refs).to_dict("records"):
            row: AggregatedRow = {"name": group["k0"], "value": 0.0}
            for i, dim in enumerate(config.dimensions):
                row[dim] = group[f"k{i}"]
            for j, metric in enumerate(config.metrics):
                row[metric] = float(group[f"m{j}"])
            if config.metrics:
                row["value"] = row[config.metrics[0]]
            results.append(row)

    if config.sort in ("asc", "desc"):
        results.sort(key=lambda r: r["value"], reverse=config.sort == "desc")

    if config.top_n and config.top_n > 0:
        results = results[: config.top_n]

    logger.debug("Aggregated %d rows into %d groups", len(frame), len(results))
    return results


def aggregate_for_visual(rows: Sequence[DataRow], visual: Visual) -> list[AggregatedRow]:
    return aggregate(rows, AggregationConfig.from_visual(visual))


def calculate_histogram(rows: Sequence[DataRow], metric: str, bins: int = DEFAULT_BINS) -> list[AggregatedRow]:
    """Bucket one numeric column into *bins* equal-width intervals.

    Only finite, parseable values participate.  Every bucket is half-open
    except the last, which includes its upper edge.
    """
    column = parse_metric(metric).column
    values = parsed(to_frame(rows, [column])[column])
    values = values[values.abs() < math.inf]
    if values.empty:
        return []

    bins = max(1, int(bins))
    lo, hi = float(values.min()), float(values.max())
    width = ((hi - lo) or 1) / bins

    histogram: list[AggregatedRow] = []
    for i in range(bins):
        start = lo + i * width
        end = start + width
        last = i == bins - 1
        inside = (values >= start) & ((values <= end) if last else (values < end))
        histogram.append({
            "name": f"{start:.0f}-{end:.0f}",
            "value": int(inside.sum()),
            "binStart": start,
            "binEnd": end,
        })
    return histogram


def calculate_scatter(
    rows: Sequence[DataRow],
    x_metric: str,
    y_metric: str,
    label_dimension: str | None = None,
) -> list[dict[str, Any]]:
    """Project two metric columns into ``{x, y, label}`` points.

    Rows where either coordinate is not numeric are dropped.
    """
    x_col = parse_metric(x_metric).column
    y_col = parse_metric(y_metric).column
    frame = to_frame(rows, [x_col, y_col] + ([label_dimension] if label_dimension else []))
    xs, ys = parsed(frame[x_col]), parsed(frame[y_col])

    points: list[dict[str, Any]] = []
    for idx in frame.index[xs.notna() & ys.notna()]:
        fallback = f"Point {idx}"
        label = to_text(frame.at[idx, label_dimension], default=fallback) if label_dimension else fallback
        points.append({"x": float(xs[idx]), "y": float(ys[idx]), "label": label})
    return points


def execute_visual(rows: Sequence[DataRow], visual: Visual) -> list[dict[str, Any]]:
    """Produce display rows for *visual*, dispatching on its chart type."""
    if visual.type == "histogram" and visual.metrics:
        return calculate_histogram(rows, visual.metrics[0], visual.bins or DEFAULT_BINS)
    if visual.type == "scatter" and len(visual.metrics) >= 2:
        label = visual.dimensions[0] if visual.dimensions else None
        return calculate_scatter(rows, visual.metrics[0], visual.metrics[1], label)
    return aggregate_for_visual(rows, visual)
