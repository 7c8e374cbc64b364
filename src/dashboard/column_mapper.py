"""
Column mapping -- picks concrete metric / dimension / time columns for a prompt.

A column is *referenced* when its lower-cased name, or any ``_`` / space /
``-`` delimited token of it, occurs in the prompt.  Unreferenced roles fall
back to the first column of that role.
"""
from __future__ import annotations

import re
from typing import Any, Sequence

from pydantic import BaseModel, Field

from src.core.logging import get_logger
from src.dashboard.spec import ColumnSchema, SortOrder, column_names, dates, dimensions, measures

logger = get_logger(__name__)

_TOKEN_SPLIT_RE = re.compile(r"[_\s-]")
_BY_WORD_RE = re.compile(r"by\s+(\w+)")
_TOP_RE = re.compile(r"top\s+(\d+)")
_BOTTOM_RE = re.compile(r"bottom\s+(\d+)")
_ASCENDING_RE = re.compile(r"lowest|worst|least|ascending")


class ColumnNotFoundError(ValueError):
    """A mapped column does not exist in the dataset schema."""


class ColumnMapping(BaseModel):
    """Columns and ordering selected for a prompt."""

    metrics: list[str] = Field(default_factory=list)
    dimensions: list[str] = Field(default_factory=list)
    filters: dict[str, list[str]] = Field(default_factory=dict)
    time_column: str | None = None
    sort_by: str | None = None
    sort_direction: SortOrder = "desc"
    top_n: int | None = None


def is_referenced(column: str, prompt_lower: str) -> bool:
    name = column.lower()
    if name in prompt_lower:
        return True
    return any(part in prompt_lower for part in _TOKEN_SPLIT_RE.split(name) if part)


def _referenced(columns: list[ColumnSchema], prompt_lower: str) -> list[str]:
    return [c.name for c in columns if is_referenced(c.name, prompt_lower)]


def map_columns(
    prompt: str,
    schema: list[ColumnSchema],
    sample_rows: Sequence[dict[str, Any]] | None = None,
) -> ColumnMapping:
    """Map *prompt* onto the columns of *schema*.

    ``filters`` is always empty: value-level filter extraction is not done
    here.  *sample_rows* is reserved for that.
    """
    text = prompt.lower()
    measure_cols = measures(schema)
    dim_cols = dimensions(schema)
    date_cols = dates(schema)

    metrics = _referenced(measure_cols, text)
    if not metrics and measure_cols:
        metrics = [measure_cols[0].name]

    dims = _referenced(dim_cols, text)
    if not dims and dim_cols:
        by_match = _BY_WORD_RE.search(text)
        if by_match:
            word = by_match.group(1)
            for col in dim_cols:
                name = col.name.lower()
                if word in name or name in word:
                    dims = [col.name]
                    break
        if not dims:
            dims = [dim_cols[0].name]

    time_column: str | None = None
    if date_cols:
        referenced_dates = _referenced(date_cols, text)
        time_column = referenced_dates[0] if referenced_dates else date_cols[0].name

    top_match = _TOP_RE.search(text)
    bottom_match = _BOTTOM_RE.search(text)
    top_n: int | None = None
    if top_match:
        top_n = int(top_match.group(1))
    if bottom_match:
        top_n = int(bottom_match.group(1))

    sort_direction: SortOrder = "desc"
    if bottom_match or _ASCENDING_RE.search(text):
        sort_direction = "asc"

    mapping = ColumnMapping(
        metrics=metrics,
        dimensions=dims,
        time_column=time_column,
        sort_by=metrics[0] if metrics else None,
        sort_direction=sort_direction,
        top_n=top_n if top_n else None,
    )
    logger.info("Columns mapped: %s", mapping.model_dump_json())
    return mapping


def validate_mapping(mapping: ColumnMapping, schema: list[ColumnSchema]) -> None:
    """Raise :class:`ColumnNotFoundError` if the mapping names an unknown column."""
    names = set(column_names(schema))
    by_name = {c.name: c for c in schema}

    for metric in mapping.metrics:
        if metric not in names:
            raise ColumnNotFoundError(f'Column "{metric}" doesn\'t exist in data')
        if by_name[metric].type != "measure":
            logger.warning('Column "%s" is not a measure, using anyway', metric)

    for dim in mapping.dimensions:
        if dim not in names:
            raise ColumnNotFoundError(f'Column "{dim}" doesn\'t exist in data')

    if mapping.time_column and mapping.time_column not in names:
        raise ColumnNotFoundError(f'Time column "{mapping.time_column}" doesn\'t exist')
