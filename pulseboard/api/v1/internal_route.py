"""
内部缓存指标

需要请求头 x-internal-token 与 INTERNAL_METRICS_TOKEN 一致；未配置令牌时一律拒绝。
POST 先重置计数再返回。
"""

from fastapi import APIRouter, Depends, Header, HTTPException, status

from pulseboard.core.config import settings
from pulseboard.core.metrics import CacheMetrics
from pulseboard.deps.health import HealthRuntime, get_health_runtime
from pulseboard.schemas.dashboard import (
    CacheMetricsResponse,
    CombinedCacheMetrics,
    InternalCacheMetricsResponse,
)
from pulseboard.utils.time_utils import Datetime

router = APIRouter(prefix="/internal", tags=["Internal"])


def require_internal_token(x_internal_token: str | None = Header(None)) -> None:
    token = settings.INTERNAL_METRICS_TOKEN
    if not token or x_internal_token != token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")


def _to_response(metrics: CacheMetrics) -> CacheMetricsResponse:
    snap = metrics.snapshot()
    return CacheMetricsResponse(hits=snap.hits, misses=snap.misses, inflight_hits=snap.inflight_hits)


def _tracked(runtime: HealthRuntime) -> list[CacheMetrics]:
    return [
        runtime.availability_loader.metrics,
        runtime.config_loader.metrics,
        runtime.group_info_loader.metrics,
        runtime.dashboard_service.response_cache.metrics,
        runtime.group_service.response_cache.metrics,
    ]


def _build_metrics(runtime: HealthRuntime) -> InternalCacheMetricsResponse:
    availability, config, group_info, dashboard, group_dashboard = (_to_response(m) for m in _tracked(runtime))
    db_caches = (availability, config, group_info)
    return InternalCacheMetricsResponse(
        availability_cache=availability,
        config_cache=config,
        group_info_cache=group_info,
        dashboard_cache=dashboard,
        group_dashboard_cache=group_dashboard,
        combined_db_cache=CombinedCacheMetrics(
            hits=sum(item.hits for item in db_caches),
            misses=sum(item.misses for item in db_caches),
        ),
        generated_at=Datetime.to_iso_string(Datetime.now()),
    )


@router.get(
    "/cache-metrics",
    response_model=InternalCacheMetricsResponse,
    dependencies=[Depends(require_internal_token)],
)
async def get_cache_metrics(runtime: HealthRuntime = Depends(get_health_runtime)):
    return _build_metrics(runtime)


@router.post(
    "/cache-metrics",
    response_model=InternalCacheMetricsResponse,
    dependencies=[Depends(require_internal_token)],
)
async def reset_cache_metrics(runtime: HealthRuntime = Depends(get_health_runtime)):
    for metrics in _tracked(runtime):
        metrics.reset()
    return _build_metrics(runtime)
