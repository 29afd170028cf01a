"""
响应级缓存

Dashboard 与分组视图共用：按 (作用域, 轮询间隔, 趋势周期, 配置集合) 缓存组装好的完整响应与 ETag。
- 命中：直接返回缓存载荷，仅刷新 generated_at
- 同 key 已有进行中的组装：复用其结果
- 未命中：单航班组装并写回缓存
- bypass（强制刷新）：跳过读缓存，但组装结果仍写回
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel

from pulseboard.core.config import settings
from pulseboard.core.metrics import CacheMetrics
from pulseboard.core.ttl_cache import SingleFlight, TTLCache
from pulseboard.schemas.health import ProviderConfig, ProviderTimeline
from pulseboard.services.dashboard.fingerprint import build_payload_etag
from pulseboard.utils.time_utils import Datetime

T = TypeVar("T", bound=BaseModel)


@dataclass
class DashboardLoadResult(Generic[T]):
    data: T
    etag: str


class ScopedResponseCache(Generic[T]):
    def __init__(
        self,
        name: str,
        default_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.cache: TTLCache[str, T] = TTLCache(default_ttl or settings.DASHBOARD_CACHE_TTL_SECONDS, clock)
        self.inflight: SingleFlight[str, DashboardLoadResult[T]] = SingleFlight()
        self.metrics = CacheMetrics(name)

    async def get_or_compose(
        self,
        key: str,
        compose: Callable[[], Awaitable[T]],
        *,
        ttl: float | None = None,
        bypass: bool = False,
    ) -> DashboardLoadResult[T]:
        if bypass:
            return await self._compose_and_store(key, compose, ttl)

        entry = self.cache.get(key)
        if self.cache.is_fresh(entry):
            self.metrics.record_hit()
            etag = entry.fingerprint or build_payload_etag(entry.payload)
            data = entry.payload.model_copy(update={"generated_at": Datetime.now_ms()})
            return DashboardLoadResult(data=data, etag=etag)

        if key in self.inflight:
            self.metrics.record_inflight_hit()
        else:
            self.metrics.record_miss()
        return await self.inflight.run(key, lambda: self._compose_and_store(key, compose, ttl))

    async def _compose_and_store(
        self,
        key: str,
        compose: Callable[[], Awaitable[T]],
        ttl: float | None,
    ) -> DashboardLoadResult[T]:
        data = await compose()
        etag = build_payload_etag(data)
        self.cache.set(key, data, ttl=ttl, fingerprint=etag)
        return DashboardLoadResult(data=data, etag=etag)

    def clear(self) -> None:
        self.cache.clear()


def latest_checked_at(timelines: Iterable[ProviderTimeline]) -> str | None:
    """所有时间线 latest.checked_at 中可解析的最大值，原样返回字符串"""
    best: str | None = None
    best_dt = None
    for timeline in timelines:
        parsed = Datetime.parse_iso_or_none(timeline.latest.checked_at)
        if parsed is None:
            continue
        parsed = Datetime.ensure_aware(parsed)
        if best_dt is None or parsed > best_dt:
            best, best_dt = timeline.latest.checked_at, parsed
    return best


def split_maintenance(configs: Iterable[ProviderConfig]) -> tuple[list[ProviderConfig], list[ProviderConfig]]:
    configs = list(configs)
    active = [cfg for cfg in configs if not cfg.is_maintenance]
    maintenance = [cfg for cfg in configs if cfg.is_maintenance]
    return active, maintenance


