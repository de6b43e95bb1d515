"""
Initiative Analytics Routes for SmartSpec
Read-only lifecycle statistics; headline values are also published as Prometheus gauges.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from services.analytics_service import (
    AnalyticsService, ProcessMetrics, ProcessTrends, PerformanceMetrics
)
from services.metrics_service import InitiativeMetrics

router = APIRouter(prefix="/initiatives/analytics", tags=["initiatives-analytics"])


def get_analytics_service(request: Request) -> AnalyticsService:
    return request.app.state.services.analytics


def get_metrics(request: Request) -> InitiativeMetrics:
    return request.app.state.services.metrics


def _check_window(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")


@router.get("/metrics", response_model=ProcessMetrics)
async def get_process_metrics(
    start_date: Optional[datetime] = Query(None, description="Only initiatives created at or after"),
    end_date: Optional[datetime] = Query(None, description="Only initiatives created at or before"),
    analytics: AnalyticsService = Depends(get_analytics_service),
    metrics: InitiativeMetrics = Depends(get_metrics)
):
    """Status mix, revision counts and time to approval"""
    _check_window(start_date, end_date)
    result = await analytics.get_process_metrics(start_date, end_date)
    metrics.observe_process_metrics(result)
    return result


@router.get("/trends", response_model=ProcessTrends)
async def get_process_trends(
    days: int = Query(30, ge=1, le=365, description="Trailing window in days"),
    analytics: AnalyticsService = Depends(get_analytics_service)
):
    """Initiatives created per day over the trailing window"""
    return await analytics.get_process_trends(days)


@router.get("/performance", response_model=PerformanceMetrics)
async def get_performance_metrics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    analytics: AnalyticsService = Depends(get_analytics_service),
    metrics: InitiativeMetrics = Depends(get_metrics)
):
    """Task counts, type/priority mix and story points of approved breakdowns"""
    _check_window(start_date, end_date)
    result = await analytics.get_performance_metrics(start_date, end_date)
    metrics.observe_performance_metrics(result)
    return result
