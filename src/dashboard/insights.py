"""
Dashboard insights -- short natural-language findings about the data.

Tries the collaborator first and falls back to a local generator that
reads the raw rows directly.
"""
from __future__ import annotations

from typing import Any, Sequence

from src.core.logging import get_logger
from src.core.utils import parse_float, to_text
from src.dashboard.ai_service import AICollaborator, CollaboratorError, FallbackRequested
from src.dashboard.spec import ColumnSchema, DashboardSpec, dimensions, measures

logger = get_logger(__name__)

MAX_INSIGHTS = 5


def format_number(value: float) -> str:
    """Compact display: ``1.5M``, ``12.3K``, ``950``."""
    magnitude = abs(value)
    if magnitude >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{value / 1_000:.1f}K"
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def _values(rows: Sequence[dict[str, Any]], column: str) -> list[float]:
    return [v for v in (parse_float(r.get(column)) for r in rows) if v is not None]


def _measure_summary(rows: Sequence[dict[str, Any]], column: str) -> str | None:
    values = _values(rows, column)
    if not values:
        return None
    total = sum(values)
    return (
        f"Total {column}: {format_number(total)} "
        f"(avg {format_number(total / len(values))}, "
        f"min {format_number(min(values))}, max {format_number(max(values))})"
    )


def _ranking_insights(rows: Sequence[dict[str, Any]], dim: str, measure: str) -> list[str]:
    grouped: dict[str, float] = {}
    for row in rows:
        key = to_text(row.get(dim)) or "Unknown"
        value = parse_float(row.get(measure)) or 0.0
        grouped[key] = grouped.get(key, 0.0) + value

    ranked = sorted(grouped.items(), key=lambda kv: kv[1], reverse=True)
    total = sum(v for _, v in ranked)
    if not ranked or total <= 0:
        return []

    top_key, top_value = ranked[0]
    out = [
        f'"{top_key}" leads with {format_number(top_value)} {measure} '
        f"({top_value / total * 100:.1f}% of total)"
    ]
    if len(ranked) >= 3:
        top3 = sum(v for _, v in ranked[:3])
        out.append(f"Top 3 {dim} values account for {top3 / total * 100:.1f}% of all {measure}")
    bottom_key, bottom_value = ranked[-1]
    if len(ranked) >= 2 and bottom_value > 0:
        out.append(
            f'"{top_key}" is {top_value / bottom_value:.1f}x the lowest performer "{bottom_key}"'
        )
    return out


def generate_local_insights(
    spec: DashboardSpec,
    rows: Sequence[dict[str, Any]],
    schema: list[ColumnSchema],
) -> list[str]:
    measure_cols = measures(schema)
    dim_cols = dimensions(schema)

    insights: list[str] = []
    for col in measure_cols:
        summary = _measure_summary(rows, col.name)
        if summary:
            insights.append(summary)

    ranking: list[str] = []
    if measure_cols and dim_cols:
        ranking = _ranking_insights(rows, dim_cols[0].name, measure_cols[0].name)

    size_line = (
        f"Dataset contains {len(rows)} records across {len(dim_cols)} dimensions; "
        f"dashboard shows {len(spec.visuals)} visualizations"
    )
    # Keep the ranking findings and the size line even when many measures exist
    room = MAX_INSIGHTS - len(ranking) - 1
    return (insights[:max(room, 1)] + ranking + [size_line])[:MAX_INSIGHTS]


def generate_insights(
    spec: DashboardSpec,
    rows: Sequence[dict[str, Any]],
    schema: list[ColumnSchema],
    collaborator: AICollaborator | None = None,
) -> tuple[list[str], str]:
    """Insights for *spec*; returns ``(insights, source)`` with source ``ai`` or ``local``."""
    collaborator = collaborator or AICollaborator()
    try:
        return collaborator.insights(spec, schema, rows)[:MAX_INSIGHTS], "ai"
    except (FallbackRequested, CollaboratorError) as exc:
        logger.warning("AI insights failed, using local analysis: %s", exc)
        return generate_local_insights(spec, rows, schema), "local"
