"""POST /data/schema, /data/quality, /data/aggregate -- dataset endpoints."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, Field

from src.core.logging import get_logger
from src.dashboard.spec import ColumnSchema, Visual
from src.dataset.aggregation import execute_visual
from src.dataset.quality import validate_data_quality
from src.dataset.schema_detector import detect_schema

logger = get_logger(__name__)
router = APIRouter()


class RowsRequest(BaseModel):
    rows: list[dict[str, Any]] = Field(default_factory=list, description="Raw uploaded rows")


class QualityRequest(RowsRequest):
    schema_: list[ColumnSchema] | None = Field(
        None, alias="schema", description="Detected from rows when omitted",
    )

    model_config = {"populate_by_name": True}


class AggregateRequest(RowsRequest):
    visual: Visual


@router.post("/schema")
def schema_endpoint(req: RowsRequest):
    """Infer column roles from raw rows."""
    schema = detect_schema(req.rows)
    return {"schema": [c.model_dump(by_alias=True) for c in schema]}


@router.post("/quality")
def quality_endpoint(req: QualityRequest):
    """Advisory data-quality report."""
    schema = req.schema_ if req.schema_ is not None else detect_schema(req.rows)
    report = validate_data_quality(req.rows, schema)
    return report.model_dump(by_alias=True)


@router.post("/aggregate")
def aggregate_endpoint(req: AggregateRequest):
    """Execute one visual against raw rows and return its display rows."""
    return {"visualId": req.visual.id, "rows": execute_visual(req.rows, req.visual)}
