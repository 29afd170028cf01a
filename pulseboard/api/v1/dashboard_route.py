from fastapi import APIRouter, Depends, Query, Request, Response

from pulseboard.deps.health import get_dashboard_service
from pulseboard.services.dashboard.dashboard_service import DashboardService

from .conditional import conditional_response, parse_refresh_mode, parse_trend_period

router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard")
async def get_dashboard(
    request: Request,
    trend_period: str | None = Query(None, alias="trendPeriod"),
    force_refresh: str | None = Query(None, alias="forceRefresh"),
    svc: DashboardService = Depends(get_dashboard_service),
) -> Response:
    result = await svc.load(
        refresh_mode=parse_refresh_mode(force_refresh),
        trend_period=parse_trend_period(trend_period),
    )
    return conditional_response(request, result)
