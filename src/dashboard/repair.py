"""
Spec validation & repair -- the safety net every spec passes through.

``repair_spec`` accepts a :class:`DashboardSpec` or any raw JSON-ish object
(an AI reply, a refined spec, garbage) and always returns a renderable
:class:`DashboardSpec` whose metrics and dimensions reference real schema
columns.  Work happens on a deep copy; the caller's object is never touched.

Column references are resolved in this order:
  1. exact case-insensitive match
  2. substring match in either direction
  3. token overlap (tokens split on ``_`` / space / ``-``)
then fall back to the first column of the expected role, or are dropped.
"""
from __future__ import annotations

import copy
import math
import re
from typing import Any

from src.core.logging import get_logger
from src.dashboard.spec import (
    CHART_TYPES,
    ColumnSchema,
    DashboardSpec,
    Visual,
    column_names,
    dates,
    dimensions,
    measures,
    parse_metric,
)

logger = get_logger(__name__)

DEFAULT_TITLE = "Dashboard"
_TOKEN_SPLIT_RE = re.compile(r"[_\s-]+")


# ── Fuzzy column lookup ─────────────────────────────────


def _tokens(name: str) -> set[str]:
    return {t for t in _TOKEN_SPLIT_RE.split(name.lower()) if t}


def find_similar_column(target: str, available: list[str]) -> str | None:
    """Best-effort match of *target* against *available* column names."""
    if not target:
        return None
    lowered = target.lower().strip()
    if not lowered:
        return None

    for col in available:
        if col.lower() == lowered:
            return col

    for col in available:
        name = col.lower()
        if name and (lowered in name or name in lowered):
            return col

    target_tokens = _tokens(lowered)
    for col in available:
        if target_tokens & _tokens(col):
            return col
    return None


# ── Issue listing (non-mutating) ────────────────────────


def find_spec_issues(spec: Any, schema: list[ColumnSchema]) -> list[str]:
    """Human-readable problems in *spec*; an empty list means nothing to fix."""
    raw = spec.to_wire() if isinstance(spec, DashboardSpec) else spec
    if not isinstance(raw, dict):
        return ["Spec is not an object"]

    names = set(column_names(schema))
    issues: list[str] = []
    if not isinstance(raw.get("title"), str) or not raw.get("title"):
        issues.append("Missing dashboard title")

    visuals = raw.get("visuals")
    if not isinstance(visuals, list):
        issues.append("Visuals is not a list")
        return issues
    if not visuals:
        issues.append("Dashboard has no visuals")

    for idx, visual in enumerate(visuals, start=1):
        label = f"Visual {idx}"
        if not isinstance(visual, dict):
            issues.append(f"{label} is not an object")
            continue
        for key in ("id", "type", "title"):
            if not visual.get(key):
                issues.append(f"{label} is missing '{key}'")
        if visual.get("type") and visual.get("type") not in CHART_TYPES:
            issues.append(f"{label} has unknown type '{visual.get('type')}'")
        metrics = visual.get("metrics")
        if isinstance(metrics, list):
            for metric in metrics:
                column = parse_metric(metric).column if isinstance(metric, str) else None
                if column not in names:
                    issues.append(f"{label} references unknown metric column '{column or metric}'")
        elif metrics is not None:
            issues.append(f"{label} metrics is not a list")
        dims = visual.get("dimensions")
        if isinstance(dims, list):
            for dim in dims:
                if dim not in names:
                    issues.append(f"{label} references unknown dimension '{dim}'")
        elif dims is not None:
            issues.append(f"{label} dimensions is not a list")
    return issues


# ── Per-visual repair ───────────────────────────────────


class _Repairer:
    def __init__(self, schema: list[ColumnSchema]):
        self.names = column_names(schema)
        self.first_measure = next((c.name for c in measures(schema)), None)
        self.first_category = next(
            (c.name for c in dimensions(schema) + dates(schema)), None,
        )

    def resolve(self, column: str) -> str | None:
        if column in self.names:
            return column
        return find_similar_column(column, self.names)

    def metric(self, metric: Any) -> str | None:
        ref = parse_metric(metric if isinstance(metric, str) else str(metric))
        resolved = self.resolve(ref.column)
        if resolved is None:
            if self.first_measure is None:
                logger.warning("Dropping metric %r: no measure columns", metric)
                return None
            resolved = self.first_measure
        if resolved != ref.column:
            logger.warning("Repaired metric column %r -> %r", ref.column, resolved)
        return f"{ref.aggregation.value}({resolved})"

    def dimension(self, dim: Any) -> str | None:
        resolved = self.resolve(str(dim)) if dim is not None else None
        if resolved is None:
            if self.first_category is None:
                logger.warning("Dropping dimension %r: no dimension columns", dim)
                return None
            resolved = self.first_category
        if resolved != dim:
            logger.warning("Repaired dimension %r -> %r", dim, resolved)
        return resolved

    def filters(self, raw: Any) -> dict[str, list[str]] | None:
        if not isinstance(raw, dict):
            return None
        cleaned: dict[str, list[str]] = {}
        for key, values in raw.items():
            column = self.resolve(str(key))
            if column is None:
                logger.warning("Dropping filter on unknown column %r", key)
                continue
            if not isinstance(values, list):
                values = [values]
            cleaned[column] = [str(v) for v in values if v is not None]
        return cleaned or None

    def visual(self, raw: Any, position: int) -> Visual:
        if not isinstance(raw, dict):
            raise TypeError(f"visual {position} is {type(raw).__name__}, not an object")

        chart_type = raw.get("type")
        if chart_type not in CHART_TYPES:
            if chart_type:
                logger.warning("Unknown visual type %r -> 'bar'", chart_type)
            chart_type = "bar"

        raw_metrics = raw.get("metrics") if isinstance(raw.get("metrics"), list) else []
        raw_dims = raw.get("dimensions") if isinstance(raw.get("dimensions"), list) else []

        metrics = [m for m in (self.metric(x) for x in raw_metrics) if m]
        dims = _unique([d for d in (self.dimension(x) for x in raw_dims) if d])

        if not metrics and chart_type != "table" and self.first_measure:
            metrics = [f"SUM({self.first_measure})"]

        top_n = _positive_int(raw.get("topN", raw.get("top_n")))
        return Visual(
            id=str(raw.get("id") or f"v{position}"),
            type=chart_type,
            title=str(raw.get("title") or f"Visual {position}"),
            metrics=metrics,
            dimensions=dims,
            filters=self.filters(raw.get("filters")),
            sort=raw.get("sort") if raw.get("sort") in ("asc", "desc") else None,
            top_n=top_n,
            bins=_positive_int(raw.get("bins")),
        )


def _positive_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number > 0 else None


def _unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    return [i for i in items if not (i in seen or seen.add(i))]


# ── Public API ──────────────────────────────────────────


def repair_spec(spec: Any, schema: list[ColumnSchema]) -> DashboardSpec:
    """Return a schema-consistent, non-empty copy of *spec*.  Never raises."""
    if isinstance(spec, DashboardSpec):
        working = spec.to_wire()
    else:
        working = copy.deepcopy(spec) if isinstance(spec, dict) else {}

    title = working.get("title")
    if not isinstance(title, str) or not title.strip():
        title = DEFAULT_TITLE

    raw_visuals = working.get("visuals")
    if not isinstance(raw_visuals, list):
        raw_visuals = []

    repairer = _Repairer(schema)
    visuals: list[Visual] = []
    for position, raw in enumerate(raw_visuals, start=1):
        try:
            visuals.append(repairer.visual(raw, position))
        except Exception as exc:
            logger.warning("Dropping visual %d during repair: %s", position, exc)

    # Ids must be unique for renderers
    seen: set[str] = set()
    for position, visual in enumerate(visuals, start=1):
        candidate, suffix = visual.id, 1
        while candidate in seen:
            candidate = f"{visual.id}-{suffix}"
            suffix += 1
        visual.id = candidate
        seen.add(candidate)

    if not visuals and repairer.first_measure:
        dims = [repairer.first_category] if repairer.first_category else []
        visuals.append(Visual(
            id="v1", type="bar", title=f"{repairer.first_measure} Overview",
            metrics=[f"SUM({repairer.first_measure})"], dimensions=dims,
        ))

    return DashboardSpec(title=title, visuals=visuals)
