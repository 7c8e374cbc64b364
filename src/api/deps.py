"""
Shared FastAPI dependencies.
"""
from __future__ import annotations

from functools import lru_cache

from src.dashboard.service import DashboardService


@lru_cache
def get_service() -> DashboardService:
    """Process-wide service (and with it, the result cache)."""
    return DashboardService()
