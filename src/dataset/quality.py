"""
Data-quality validation for uploaded datasets.

Checks performed (per column unless noted):
  1. Missing values (null / empty / whitespace-only)
  2. Duplicate rows (whole-row, cell by cell)
  3. Completely empty columns
  4. Type mismatches -- non-numeric values in measure columns
  5. Outliers in measure columns (IQR method, > 10 values, > 5% outside)

The report is advisory only: validation never raises and is recomputed
from scratch on every call.
"""
from __future__ import annotations

import json
from typing import Any, Literal, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from src.core.logging import get_logger
from src.dashboard.spec import ColumnSchema, DataRow
from src.dataset.frame import missing_mask, parsed, to_frame

logger = get_logger(__name__)

IssueType = Literal["missing", "duplicate", "outlier", "type_mismatch", "empty_column"]
Severity = Literal["warning", "error"]

MISSING_ERROR_PCT = 50.0
DUPLICATE_ERROR_PCT = 10.0
TYPE_MISMATCH_ERROR_PCT = 20.0
OUTLIER_MIN_VALUES = 10
OUTLIER_REPORT_PCT = 5.0


class DataQualityIssue(BaseModel):
    type: IssueType
    column: str
    severity: Severity
    message: str
    count: int
    percentage: float | None = None


class DataQualityReport(BaseModel):
    score: int = Field(..., ge=0, le=100)
    total_rows: int = Field(..., alias="totalRows")
    total_columns: int = Field(..., alias="totalColumns")
    issues: list[DataQualityIssue] = Field(default_factory=list)
    warnings: list[DataQualityIssue] = Field(default_factory=list)
    errors: list[DataQualityIssue] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


# ── Individual checks ───────────────────────────────────


def _check_missing(frame: pd.DataFrame, schema: list[ColumnSchema]) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    total = len(frame)
    for col in schema:
        missing = int(missing_mask(frame[col.name]).sum())
        if missing == 0:
            continue
        pct = missing / total * 100
        issues.append(DataQualityIssue(
            type="missing",
            column=col.name,
            severity="error" if pct > MISSING_ERROR_PCT else "warning",
            message=f"{missing} missing values ({pct:.1f}%)",
            count=missing,
            percentage=pct,
        ))
    return issues


def _cell_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def _check_duplicates(rows: Sequence[DataRow]) -> list[DataQualityIssue]:
    total = len(rows)
    frame = to_frame(rows)
    if frame.columns.empty:
        duplicates = total - 1
    else:
        duplicates = int(frame.apply(lambda column: column.map(_cell_key)).duplicated().sum())
    if duplicates == 0:
        return []
    return [DataQualityIssue(
        type="duplicate",
        column="all",
        severity="error" if duplicates > total * DUPLICATE_ERROR_PCT / 100 else "warning",
        message=f"{duplicates} duplicate rows found",
        count=duplicates,
        percentage=duplicates / total * 100,
    )]


def _check_empty_columns(frame: pd.DataFrame, schema: list[ColumnSchema]) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    for col in schema:
        if not missing_mask(frame[col.name]).all():
            continue
        issues.append(DataQualityIssue(
            type="empty_column",
            column=col.name,
            severity="error",
            message="Column is completely empty",
            count=len(frame),
            percentage=100.0,
        ))
    return issues


def _filled(column: pd.Series) -> pd.Series:
    """Cells that hold something other than ``None`` or ``""``."""
    return ~(column.isna() | column.map(lambda value: value == "").astype(bool))


def _check_type_mismatches(frame: pd.DataFrame, schema: list[ColumnSchema]) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    total = len(frame)
    for col in schema:
        if col.type != "measure":
            continue
        column = frame[col.name]
        bad = int((_filled(column) & parsed(column).isna()).sum())
        if bad == 0:
            continue
        pct = bad / total * 100
        issues.append(DataQualityIssue(
            type="type_mismatch",
            column=col.name,
            severity="error" if pct > TYPE_MISMATCH_ERROR_PCT else "warning",
            message=f"{bad} non-numeric values in measure column ({pct:.1f}%)",
            count=bad,
            percentage=pct,
        ))
    return issues


def _check_outliers(frame: pd.DataFrame, schema: list[ColumnSchema]) -> list[DataQualityIssue]:
    issues: list[DataQualityIssue] = []
    for col in schema:
        if col.type != "measure":
            continue
        values = parsed(frame[col.name]).dropna().sort_values(ignore_index=True)
        n = len(values)
        if n <= OUTLIER_MIN_VALUES:
            continue
        # Floor-index quartiles, no interpolation.
        q1 = values[int(n * 0.25)]
        q3 = values[int(n * 0.75)]
        iqr = q3 - q1
        lower, upper = q1 - 1.5 * iqr, q3 + 1.5 * iqr
        outliers = int(((values < lower) | (values > upper)).sum())
        pct = outliers / n * 100
        if outliers and pct > OUTLIER_REPORT_PCT:
            issues.append(DataQualityIssue(
                type="outlier",
                column=col.name,
                severity="warning",
                message=f"{outliers} potential outliers detected ({pct:.1f}%)",
                count=outliers,
                percentage=pct,
            ))
    return issues


# ── Scoring ─────────────────────────────────────────────


def _score(issues: list[DataQualityIssue]) -> int:
    """Start at 100 and deduct per issue; errors weigh more than warnings."""
    score = 100.0
    for issue in issues:
        if issue.severity == "error":
            score -= min(issue.percentage * 0.5, 20) if issue.percentage else 10
        else:
            score -= min(issue.percentage * 0.2, 5) if issue.percentage else 2
    score = max(0.0, min(100.0, score))
    # Round half up.
    return int(score + 0.5)


# ── Public API ──────────────────────────────────────────


def validate_data_quality(rows: Sequence[DataRow], schema: list[ColumnSchema]) -> DataQualityReport:
    """Score *rows* against *schema* and list every detected issue."""
    if not rows:
        return DataQualityReport(score=0, total_rows=0, total_columns=0)

    frame = to_frame(rows, [col.name for col in schema])
    issues = (
        _check_missing(frame, schema)
        + _check_duplicates(rows)
        + _check_empty_columns(frame, schema)
        + _check_type_mismatches(frame, schema)
        + _check_outliers(frame, schema)
    )
    report = DataQualityReport(
        score=_score(issues),
        total_rows=len(rows),
        total_columns=len(schema),
        issues=issues,
        warnings=[i for i in issues if i.severity == "warning"],
        errors=[i for i in issues if i.severity == "error"],
    )
    logger.info(
        "Data quality score=%d rows=%d issues=%d (errors=%d)",
        report.score, report.total_rows, len(issues), len(report.errors),
    )
    return report
