"""
Schema detection -- infers measure / dimension / date roles from raw rows.

Only the first :data:`SAMPLE_SIZE` rows are inspected.  The column set is
taken from the first row's keys, in order.
"""
from __future__ import annotations

import re
from typing import Any, Sequence

from src.core.logging import get_logger
from src.core.utils import parse_float
from src.dashboard.spec import ColumnSchema, DataRow

logger = get_logger(__name__)

SAMPLE_SIZE = 100
NUMERIC_THRESHOLD = 0.8
SAMPLE_VALUES = 3

_DATE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\d{4}-\d{2}-\d{2}$"),   # YYYY-MM-DD
    re.compile(r"^\d{2}/\d{2}/\d{4}$"),   # MM/DD/YYYY
    re.compile(r"^\d{2}-\d{2}-\d{4}$"),   # MM-DD-YYYY
)


def _is_date(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return any(p.match(value) for p in _DATE_PATTERNS)


def _present(value: Any) -> bool:
    # Whitespace-only strings still count as observed values here.
    return value is not None and value != ""


def detect_column(name: str, values: list[Any]) -> ColumnSchema:
    """Classify one column from its sampled non-empty values."""
    if any(_is_date(v) for v in values):
        return ColumnSchema(
            name=name, type="date", data_type="date",
            sample_values=values[:SAMPLE_VALUES],
        )

    numeric = [v for v in values if parse_float(v) is not None]
    if values and len(numeric) >= len(values) * NUMERIC_THRESHOLD:
        return ColumnSchema(
            name=name, type="measure", data_type="number",
            sample_values=numeric[:SAMPLE_VALUES],
        )

    return ColumnSchema(
        name=name, type="dimension", data_type="string",
        sample_values=values[:SAMPLE_VALUES],
    )


def detect_schema(rows: Sequence[DataRow]) -> list[ColumnSchema]:
    """Infer the column schema of *rows*; empty input gives an empty schema."""
    if not rows:
        return []

    sample = rows[:SAMPLE_SIZE]
    schema: list[ColumnSchema] = []
    for name in rows[0].keys():
        values = [row.get(name) for row in sample]
        schema.append(detect_column(name, [v for v in values if _present(v)]))

    logger.info(
        "Detected schema: %d columns (%d measures, %d dates)",
        len(schema),
        sum(1 for c in schema if c.type == "measure"),
        sum(1 for c in schema if c.type == "date"),
    )
    return schema
