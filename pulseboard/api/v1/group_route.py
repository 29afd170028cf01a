from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from pulseboard.deps.health import get_group_service
from pulseboard.services.dashboard.group_service import GroupDashboardService

from .conditional import conditional_response, parse_refresh_mode, parse_trend_period

router = APIRouter(tags=["Groups"])


@router.get("/groups", response_model=list[str])
async def list_groups(svc: GroupDashboardService = Depends(get_group_service)):
    return await svc.list_groups()


@router.get("/group/{group_name}")
async def get_group_dashboard(
    group_name: str,
    request: Request,
    trend_period: str | None = Query(None, alias="trendPeriod"),
    force_refresh: str | None = Query(None, alias="forceRefresh"),
    svc: GroupDashboardService = Depends(get_group_service),
) -> Response:
    result = await svc.load(
        group_name,
        refresh_mode=parse_refresh_mode(force_refresh),
        trend_period=parse_trend_period(trend_period),
    )
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return conditional_response(request, result)
