"""看板类接口共用的查询参数解析与条件 GET 响应"""

from __future__ import annotations

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from pulseboard.schemas.health import DEFAULT_TREND_PERIOD, AvailabilityPeriod, RefreshMode
from pulseboard.services.dashboard.base import DashboardLoadResult
from pulseboard.services.health.polling import poll_interval_seconds

# 数据变化周期（秒），用作 CDN stale-while-revalidate 窗口
STALE_WHILE_REVALIDATE_SECONDS = 5 * 60


def parse_trend_period(raw: str | None) -> AvailabilityPeriod:
    try:
        return AvailabilityPeriod(raw)
    except ValueError:
        return DEFAULT_TREND_PERIOD


def parse_refresh_mode(raw: str | None) -> RefreshMode:
    return RefreshMode.ALWAYS if raw in ("1", "true") else RefreshMode.NEVER


def cache_headers(etag: str) -> dict[str, str]:
    seconds = poll_interval_seconds()
    return {
        # 浏览器每次都向 CDN 验证
        "Cache-Control": "public, no-cache",
        "CDN-Cache-Control": f"max-age={seconds}",
        "Cloudflare-CDN-Cache-Control": f"max-age={seconds}, stale-while-revalidate={STALE_WHILE_REVALIDATE_SECONDS}",
        "ETag": etag,
        "Vary": "Accept-Encoding",
    }


def conditional_response(request: Request, result: DashboardLoadResult[BaseModel]) -> Response:
    if request.headers.get("if-none-match") == result.etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers={"ETag": result.etag})
    return JSONResponse(
        content=result.data.model_dump(mode="json", by_alias=True),
        headers=cache_headers(result.etag),
    )
