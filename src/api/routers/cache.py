"""GET /cache/stats, POST /cache/clear -- result cache administration."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.deps import get_service
from src.dashboard.service import DashboardService

router = APIRouter()


class CacheStatsResponse(BaseModel):
    size: int
    max_size: int
    ttl_seconds: float
    hits: int
    misses: int
    hit_rate: float


@router.get("/stats", response_model=CacheStatsResponse)
def cache_stats_endpoint(service: DashboardService = Depends(get_service)):
    """Return result cache statistics."""
    return CacheStatsResponse(**service.cache.stats())


@router.post("/clear")
def cache_clear_endpoint(service: DashboardService = Depends(get_service)):
    """Flush the result cache."""
    return {"cleared": service.cache.clear()}
