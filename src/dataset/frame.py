"""
Row-list -> DataFrame conversion shared by the dataset modules.

Cells are kept as ``object`` so text, numbers and ``None`` survive exactly
as uploaded; numeric and display views are derived per column on demand.
"""
from __future__ import annotations

from typing import Iterable, Sequence

import pandas as pd

from src.core.utils import is_missing, parse_float, to_text
from src.dashboard.spec import DataRow


def to_frame(rows: Sequence[DataRow], columns: Iterable[str] | None = None) -> pd.DataFrame:
    """One object column per name; absent keys read as ``None``.

    Without *columns*, every key seen in *rows* is used in first-seen order.
    """
    if columns is None:
        columns = (key for row in rows for key in row)
    names = list(dict.fromkeys(columns))
    return pd.DataFrame(
        {name: pd.Series([row.get(name) for row in rows], dtype=object) for name in names},
        index=pd.RangeIndex(len(rows)),
    )


def parsed(column: pd.Series) -> pd.Series:
    """float64 view of *column*; NaN where a cell is not numeric."""
    return pd.to_numeric(column.map(parse_float), errors="coerce").astype("float64")


def as_text(column: pd.Series, default: str = "") -> pd.Series:
    """Display text of every cell, ``default`` for ``None``."""
    return column.map(lambda value: to_text(value, default=default))


def missing_mask(column: pd.Series) -> pd.Series:
    """True for ``None``/NaN, empty and whitespace-only cells."""
    return column.isna() | column.map(is_missing).astype(bool)
