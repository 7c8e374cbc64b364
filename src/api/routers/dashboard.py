"""POST /dashboard/generate, /refine, /insights, /suggestions, /export -- dashboard endpoints."""
from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.api.deps import get_service
from src.core.logging import get_logger
from src.dashboard.export import DEFAULT_TABLE, describe_dashboard
from src.dashboard.refiner import NoDashboardError
from src.dashboard.service import DashboardService, GenerationInputError
from src.dashboard.spec import ChatMessage, ColumnSchema, DashboardSpec
from src.dashboard.suggestions import generate_contextual_suggestions

logger = get_logger(__name__)
router = APIRouter()


class _DatasetRequest(BaseModel):
    schema_: list[ColumnSchema] = Field(default_factory=list, alias="schema")
    rows: list[dict[str, Any]] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class GenerateRequest(_DatasetRequest):
    prompt: str = Field(..., max_length=1000, description="What the dashboard should show")
    strategy: Literal["auto", "simple"] = Field(
        "auto", description="auto: cache, AI, local fallbacks; simple: offline keyword generator",
    )


class RefineRequest(_DatasetRequest):
    current_spec: DashboardSpec | None = Field(None, alias="currentSpec")
    instruction: str = Field(..., min_length=1, max_length=1000)
    history: list[ChatMessage] = Field(default_factory=list)


class InsightsRequest(_DatasetRequest):
    spec: DashboardSpec


class SuggestionsRequest(BaseModel):
    spec: DashboardSpec
    schema_: list[ColumnSchema] = Field(default_factory=list, alias="schema")
    exclude: list[str] = Field(default_factory=list, description="Suggestion texts already shown")

    model_config = {"populate_by_name": True}


class ExportRequest(BaseModel):
    spec: DashboardSpec
    table: str = Field(DEFAULT_TABLE, min_length=1, description="Source table name used in formulas")


@router.post("/generate")
def generate_endpoint(req: GenerateRequest, service: DashboardService = Depends(get_service)):
    """Prompt -> repaired dashboard spec, labelled with where it came from."""
    try:
        result = service.generate(req.schema_, req.rows, req.prompt, req.strategy)
    except GenerationInputError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        logger.exception("Dashboard.generate failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return result.to_dict()


@router.post("/refine")
def refine_endpoint(req: RefineRequest, service: DashboardService = Depends(get_service)):
    """Apply a conversational instruction to the current dashboard."""
    try:
        result = service.refine(req.current_spec, req.schema_, req.rows, req.instruction, req.history)
    except NoDashboardError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except Exception as exc:
        logger.exception("Dashboard.refine failed")
        raise HTTPException(status_code=500, detail=str(exc))
    return result.to_dict()


@router.post("/insights")
def insights_endpoint(req: InsightsRequest, service: DashboardService = Depends(get_service)):
    insights, source = service.insights(req.spec, req.schema_, req.rows)
    return {"insights": insights, "source": source}


@router.post("/suggestions")
def suggestions_endpoint(req: SuggestionsRequest):
    """Ranked follow-up instructions for the current dashboard."""
    suggestions = generate_contextual_suggestions(req.spec, req.schema_, req.exclude)
    return {"suggestions": [s.to_dict() for s in suggestions]}


@router.post("/export")
def export_endpoint(req: ExportRequest):
    """BI visual types and measure formulas for the dashboard."""
    return describe_dashboard(req.spec, req.table)
