"""
Deterministic dashboard synthesis.

Three generators, all pure functions of their inputs:

  generate_dashboard_spec     -- keyword generator driven by coarse prompt
                                 signals (sales / region / time / top ...)
  generate_robust_dashboard   -- intent-driven generator: classify intent,
                                 map columns, then emit a scripted visual
                                 sequence for that intent
  generate_fallback_dashboard -- terminal generator that needs nothing but
                                 the schema

Every generator emits a single preview table when the schema has no
measures.  Generated specs still go through ``repair_spec`` before use.
"""
from __future__ import annotations

import re
from typing import Any, Sequence

from src.core.logging import get_logger
from src.dashboard.column_mapper import ColumnMapping, ColumnNotFoundError, map_columns, validate_mapping
from src.dashboard.intent import Intent, IntentResult, classify_intent
from src.dashboard.rules import load_rules
from src.dashboard.spec import ColumnSchema, DashboardSpec, Visual, dates, dimensions, measures

logger = get_logger(__name__)

MAX_VISUALS = 6
DEFAULT_TOP_N = 10
DETAIL_TABLE_ROWS = 20
PREVIEW_COLUMNS = 5
PREVIEW_ROWS = 100


# ── Shared helpers ──────────────────────────────────────


class _VisualFactory:
    """Hands out sequential ``v1``, ``v2`` ... ids."""

    def __init__(self) -> None:
        self._next = 1

    def __call__(self, type: str, title: str, metrics: list[str], dims: list[str], **extra: Any) -> Visual:
        visual = Visual(
            id=f"v{self._next}", type=type, title=title,
            metrics=metrics, dimensions=dims, **extra,
        )
        self._next += 1
        return visual


def _sum(column: str) -> str:
    return f"SUM({column})"


def _dims(*names: str | None) -> list[str]:
    return [n for n in names if n]


def data_preview_spec(schema: list[ColumnSchema]) -> DashboardSpec:
    """Plain table of the first columns; used when there is nothing to aggregate."""
    return DashboardSpec(
        title="Data Preview",
        visuals=[Visual(
            id="v1", type="table", title="All Data", metrics=[],
            dimensions=[c.name for c in schema][:PREVIEW_COLUMNS],
            top_n=PREVIEW_ROWS,
        )],
    )


# ── Keyword generator ───────────────────────────────────


def _first_mentioned(columns: list[ColumnSchema], text: str) -> str | None:
    for col in columns:
        if col.name.lower() in text:
            return col.name
    return None


def _named_like(columns: list[ColumnSchema], fragment: str) -> str | None:
    for col in columns:
        if fragment in col.name.lower():
            return col.name
    return None


def _keyword_title(prompt: str, signal) -> str:
    if signal("sales"):
        return "Sales Performance Dashboard"
    if signal("region"):
        return "Regional Analysis Dashboard"
    if signal("product"):
        return "Product Performance Dashboard"
    if signal("time"):
        return "Trend Analysis Dashboard"
    clean = re.sub(r"[^a-zA-Z ]", "", prompt[:40]).strip()
    return f"{clean} Dashboard" if clean else "Business Intelligence Dashboard"


def generate_dashboard_spec(schema: list[ColumnSchema], prompt: str) -> DashboardSpec:
    """Assemble a small dashboard from coarse prompt signals."""
    measure_cols = measures(schema)
    if not measure_cols:
        return data_preview_spec(schema)

    rules = load_rules()
    text = prompt.lower()

    def signal(name: str) -> bool:
        return rules.has_signal(name, text)

    dim_cols = dimensions(schema)
    date_cols = dates(schema)

    primary_measure = _first_mentioned(measure_cols, text) or measure_cols[0].name
    primary_dim = _first_mentioned(dim_cols, text) or (dim_cols[0].name if dim_cols else None)
    date_dim = date_cols[0].name if date_cols else None

    make = _VisualFactory()
    visuals = [make("card", f"Total {primary_measure}", [_sum(primary_measure)], [])]

    if signal("region") or signal("product") or signal("comparison") or not signal("time"):
        dim = primary_dim
        if signal("region") and _named_like(dim_cols, "region"):
            dim = _named_like(dim_cols, "region")
        elif signal("product") and _named_like(dim_cols, "product"):
            dim = _named_like(dim_cols, "product")
        visuals.append(make(
            "bar", f"{primary_measure} by {dim or 'Category'}",
            [_sum(primary_measure)], _dims(dim), sort="desc",
        ))

    if signal("time") and date_dim:
        visuals.append(make(
            "line", f"{primary_measure} Over Time",
            [_sum(primary_measure)], [date_dim], sort="asc",
        ))

    if signal("distribution"):
        visuals.append(make(
            "pie", f"{primary_measure} Distribution",
            [_sum(primary_measure)], _dims(primary_dim),
        ))

    if signal("top"):
        visuals.append(make(
            "table", f"Top {primary_dim or 'Category'} by {primary_measure}",
            [_sum(primary_measure)], _dims(primary_dim), sort="desc",
        ))

    # Only the card so far: fall back to a bar + pie pair
    if len(visuals) == 1:
        visuals.append(make(
            "bar", f"{primary_measure} by {primary_dim or 'Category'}",
            [_sum(primary_measure)], _dims(primary_dim), sort="desc",
        ))
        if dim_cols:
            visuals.append(make(
                "pie", f"{primary_measure} Share",
                [_sum(primary_measure)], _dims(primary_dim),
            ))

    secondary = next((m.name for m in measure_cols if m.name != primary_measure), None)
    if secondary:
        visuals.append(make("card", f"Total {secondary}", [_sum(secondary)], []))

    return DashboardSpec(title=_keyword_title(prompt, signal), visuals=visuals[:MAX_VISUALS])


# ── Intent-driven generator ─────────────────────────────


def select_visuals(intent: IntentResult, mapping: ColumnMapping) -> list[Visual]:
    """Scripted visual sequence for *intent*, framed by a KPI card and a detail table."""
    make = _VisualFactory()
    metric = mapping.metrics[0] if mapping.metrics else "value"
    dim = mapping.dimensions[0] if mapping.dimensions else None
    top_n = mapping.top_n or DEFAULT_TOP_N
    primary = [_sum(metric)]

    visuals = [make("card", f"Total {metric}", primary, [])]

    kind = intent.type
    if kind is Intent.TREND:
        time_col = mapping.time_column or dim
        visuals.append(make("line", f"{metric} Over Time", primary, _dims(time_col), sort="asc"))
        visuals.append(make("area", f"{metric} Trend", primary, _dims(time_col), sort="asc"))

    elif kind is Intent.COMPARISON:
        visuals.append(make(
            "bar", f"{metric} by {dim or 'Category'}", primary, _dims(dim),
            sort="desc", top_n=top_n,
        ))

    elif kind is Intent.BREAKDOWN:
        visuals.append(make("pie", f"{dim or metric} Distribution", primary, _dims(dim)))
        visuals.append(make("bar", f"{metric} Breakdown", primary, _dims(dim), sort="desc"))

    elif kind is Intent.OUTLIERS:
        visuals.append(make(
            "table", f"Top {top_n} {dim or metric}", primary, _dims(dim),
            sort=mapping.sort_direction, top_n=top_n,
        ))
        visuals.append(make(
            "bar", f"{metric} Leaders", primary, _dims(dim),
            sort=mapping.sort_direction, top_n=top_n,
        ))

    elif kind is Intent.DISTRIBUTION:
        visuals.append(make(
            "histogram", f"{metric} Distribution", primary, _dims(dim), bins=DEFAULT_TOP_N,
        ))

    elif kind is Intent.CORRELATION:
        if len(mapping.metrics) >= 2:
            first, second = mapping.metrics[:2]
            visuals.append(make(
                "scatter", f"{first} vs {second}", [_sum(first), _sum(second)], _dims(dim),
            ))
        else:
            visuals.append(make("scatter", f"{metric} Analysis", primary, _dims(dim)))

    else:
        for extra in mapping.metrics[1:4]:
            visuals.append(make("card", f"Total {extra}", [_sum(extra)], []))
        visuals.append(make(
            "bar", f"{metric} by {dim or 'Category'}", primary, _dims(dim),
            sort="desc", top_n=DEFAULT_TOP_N,
        ))
        visuals.append(make("pie", f"{dim or metric} Split", primary, _dims(dim)))

    visuals.append(make(
        "table", "Detailed Data",
        [_sum(m) for m in mapping.metrics], mapping.dimensions[:2],
        sort="desc", top_n=DETAIL_TABLE_ROWS,
    ))
    return visuals


def smart_title(intent: IntentResult, mapping: ColumnMapping) -> str:
    metric = mapping.metrics[0] if mapping.metrics else "Data"
    dim = mapping.dimensions[0] if mapping.dimensions else ""
    by_dim = f" by {dim}" if dim else ""

    titles = {
        Intent.TREND: f"{metric} Trend Analysis",
        Intent.COMPARISON: f"{metric} Comparison{by_dim}",
        Intent.BREAKDOWN: f"{metric} Breakdown{by_dim}",
        Intent.CORRELATION: f"{' vs '.join(mapping.metrics[:2]) or metric} Analysis",
        Intent.OUTLIERS: f"Top {mapping.top_n or DEFAULT_TOP_N} {dim or metric}",
        Intent.DISTRIBUTION: f"{metric} Distribution",
        Intent.SUMMARY: f"{metric} Dashboard",
    }
    return titles.get(intent.type, f"{metric} Dashboard")


def generate_robust_dashboard(
    schema: list[ColumnSchema],
    sample_rows: Sequence[dict[str, Any]] | None,
    prompt: str,
) -> DashboardSpec:
    """Intent-driven dashboard for *prompt* over *schema*."""
    if not measures(schema):
        return data_preview_spec(schema)

    intent = classify_intent(prompt, schema)
    mapping = map_columns(prompt, schema, sample_rows)
    try:
        validate_mapping(mapping, schema)
    except ColumnNotFoundError as exc:
        logger.warning("Mapping validation warning: %s -- continuing with best-effort mapping", exc)

    visuals = select_visuals(intent, mapping)
    logger.info("Visuals selected: %d for intent=%s", len(visuals), intent.type.value)
    return DashboardSpec(title=smart_title(intent, mapping), visuals=visuals)


# ── Terminal fallback ───────────────────────────────────


def generate_fallback_dashboard(
    schema: list[ColumnSchema],
    prompt: str | None = None,
    error: Exception | None = None,
) -> DashboardSpec:
    """Schema-only dashboard for when every smarter generator failed."""
    if error is not None:
        logger.warning("Generating fallback dashboard due to error: %s", error)

    measure_cols = measures(schema)
    if not measure_cols:
        return data_preview_spec(schema)

    dim_cols = dimensions(schema)
    date_cols = dates(schema)
    metric = measure_cols[0].name
    dim = dim_cols[0].name if dim_cols else None

    make = _VisualFactory()
    visuals = [
        make("card", f"Total {m.name}", [_sum(m.name)], [])
        for m in measure_cols[:3]
    ]
    if dim:
        visuals.append(make("bar", f"{metric} by {dim}", [_sum(metric)], [dim], sort="desc", top_n=10))
    if date_cols:
        visuals.append(make("line", f"{metric} Over Time", [_sum(metric)], [date_cols[0].name], sort="asc"))
    if dim:
        visuals.append(make("pie", f"{dim} Distribution", [_sum(metric)], [dim]))
    visuals.append(make(
        "table", "Detailed Data",
        [_sum(m.name) for m in measure_cols[:3]], [d.name for d in dim_cols[:3]],
        sort="desc", top_n=50,
    ))

    return DashboardSpec(
        title="Analysis Dashboard" if prompt else "Summary Dashboard",
        visuals=visuals[:MAX_VISUALS],
    )
