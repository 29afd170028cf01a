"""
前端 SWR（stale-while-revalidate）缓存客户端

面向 /api/dashboard 与 /api/group/{name} 的异步客户端镜像：
- 缓存有效：直接返回，不发请求（可选后台校验）
- 缓存过期但存在：立即返回旧数据，后台条件请求刷新
- 无缓存：复用进行中的预取，否则等待网络请求
- 强制刷新：带 forceRefresh=1&_t=<ms> 绕过 CDN，不带 If-None-Match

后台刷新与预取失败只记日志，不向调用方抛出。
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from typing import Generic, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from pulseboard.core.config import settings
from pulseboard.core.logging import logger
from pulseboard.core.ttl_cache import CacheEntry, SingleFlight, TTLCache
from pulseboard.schemas.dashboard import DashboardData, GroupDashboardData
from pulseboard.schemas.health import AvailabilityPeriod
from pulseboard.utils.time_utils import Datetime

T = TypeVar("T", bound=BaseModel)


class FrontendFetchError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"请求失败: {status_code}")
        self.status_code = status_code


class NoDataAvailableError(Exception):
    def __init__(self, message: str = "无数据可用"):
        super().__init__(message)


@dataclass
class FetchWithCacheResult(Generic[T]):
    data: T
    from_cache: bool
    is_revalidating: bool


@dataclass
class FrontendCacheMetrics:
    hits: int = 0
    misses: int = 0
    stale_hits: int = 0
    forced_refreshes: int = 0


@dataclass
class _NetworkResult(Generic[T]):
    data: T | None  # None 表示 304
    etag: str | None


class SWRResourceCache(Generic[T]):
    def __init__(
        self,
        http: httpx.AsyncClient,
        path: str,
        resource: type[T],
        key_prefix: str,
        default_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http = http
        self.path = path
        self.resource = resource
        self.key_prefix = key_prefix
        self._cache: TTLCache[str, T] = TTLCache(default_ttl or settings.FRONTEND_CACHE_TTL_SECONDS, clock)
        self._pending: SingleFlight[str, T | None] = SingleFlight()
        self._metrics = FrontendCacheMetrics()

    # ---------------- 缓存读写 ----------------

    def cache_key(self, trend_period: AvailabilityPeriod) -> str:
        return f"{self.key_prefix}:{trend_period.value}"

    def get(self, trend_period: AvailabilityPeriod) -> CacheEntry[T] | None:
        return self._cache.get(self.cache_key(trend_period))

    def set(self, trend_period: AvailabilityPeriod, data: T, etag: str | None = None) -> None:
        # TTL 跟随服务端轮询间隔
        interval_ms = getattr(data, "poll_interval_ms", None)
        ttl = interval_ms / 1000 if isinstance(interval_ms, int) and interval_ms > 0 else None
        self._cache.set(self.cache_key(trend_period), data, ttl=ttl, fingerprint=etag)

    def touch(self, trend_period: AvailabilityPeriod) -> None:
        self._cache.touch(self.cache_key(trend_period))

    def clear(self) -> None:
        self._cache.clear()

    # ---------------- 指标 ----------------

    def metrics(self) -> FrontendCacheMetrics:
        return FrontendCacheMetrics(**asdict(self._metrics))

    def reset_metrics(self) -> None:
        self._metrics = FrontendCacheMetrics()

    def _record_hit(self, stale: bool) -> None:
        self._metrics.hits += 1
        if stale:
            self._metrics.stale_hits += 1

    def _record_miss(self, forced: bool) -> None:
        self._metrics.misses += 1
        if forced:
            self._metrics.forced_refreshes += 1

    # ---------------- 网络 ----------------

    async def _fetch_from_network(
        self,
        trend_period: AvailabilityPeriod,
        etag: str | None = None,
        force_fresh: bool = False,
    ) -> _NetworkResult[T]:
        params = {"trendPeriod": trend_period.value}
        if force_fresh:
            params["forceRefresh"] = "1"
            params["_t"] = str(Datetime.now_ms())

        headers = {"If-None-Match": etag} if etag else {}
        resp = await self.http.get(self.path, params=params, headers=headers)

        if resp.status_code == 304:
            return _NetworkResult(data=None, etag=etag)
        if not resp.is_success:
            raise FrontendFetchError(resp.status_code)

        data = self.resource.model_validate(resp.json())
        return _NetworkResult(data=data, etag=resp.headers.get("etag"))

    def _revalidate_in_background(
        self,
        trend_period: AvailabilityPeriod,
        etag: str | None,
        on_update: Callable[[T], None] | None = None,
    ) -> None:
        key = self.cache_key(trend_period)
        if key in self._pending:
            return

        async def revalidate() -> T | None:
            try:
                result = await self._fetch_from_network(trend_period, etag)
            except (httpx.HTTPError, FrontendFetchError, ValidationError, ValueError) as exc:
                logger.error(f"swr_background_revalidate_failed key={key} err={exc}")
                return None
            if result.data is None:
                self.touch(trend_period)
                return None
            self.set(trend_period, result.data, result.etag)
            if on_update is not None:
                on_update(result.data)
            return result.data

        self._pending.start(key, revalidate)

    async def wait_pending(self) -> None:
        """等待所有后台刷新 / 预取结束"""
        tasks = self._pending.tasks()
        if tasks:
            await asyncio.gather(*tasks)

    # ---------------- 对外入口 ----------------

    async def fetch_with_cache(
        self,
        trend_period: AvailabilityPeriod,
        force_fresh: bool = False,
        on_background_update: Callable[[T], None] | None = None,
        revalidate_if_fresh: bool = False,
    ) -> FetchWithCacheResult[T]:
        cached = self.get(trend_period)

        if force_fresh:
            result = await self._fetch_from_network(trend_period, None, force_fresh=True)
            if result.data is not None:
                self._record_miss(forced=True)
                self.set(trend_period, result.data, result.etag)
                return FetchWithCacheResult(result.data, from_cache=False, is_revalidating=False)
            if cached is not None:
                self._record_hit(stale=True)
                return FetchWithCacheResult(cached.payload, from_cache=True, is_revalidating=False)
            raise NoDataAvailableError()

        if cached is not None and self._cache.is_fresh(cached):
            if revalidate_if_fresh:
                self._revalidate_in_background(trend_period, cached.fingerprint, on_background_update)
            self._record_hit(stale=False)
            return FetchWithCacheResult(cached.payload, from_cache=True, is_revalidating=revalidate_if_fresh)

        if cached is not None:
            self._revalidate_in_background(trend_period, cached.fingerprint, on_background_update)
            self._record_hit(stale=True)
            return FetchWithCacheResult(cached.payload, from_cache=True, is_revalidating=True)

        pending = self._pending.get(self.cache_key(trend_period))
        if pending is not None:
            data = await asyncio.shield(pending)
            if data is not None:
                self._record_hit(stale=False)
                return FetchWithCacheResult(data, from_cache=True, is_revalidating=False)
            latest = self.get(trend_period)
            if latest is not None:
                self._record_hit(stale=True)
                return FetchWithCacheResult(latest.payload, from_cache=True, is_revalidating=False)

        result = await self._fetch_from_network(trend_period)
        if result.data is not None:
            self._record_miss(forced=False)
            self.set(trend_period, result.data, result.etag)
            return FetchWithCacheResult(result.data, from_cache=False, is_revalidating=False)
        raise NoDataAvailableError()

    async def prefetch(
        self,
        periods: Iterable[AvailabilityPeriod],
        current_period: AvailabilityPeriod | None = None,
    ) -> None:
        """预取其他趋势周期；已新鲜或已在请求中的跳过"""
        started = []
        for period in periods:
            if period == current_period:
                continue
            key = self.cache_key(period)
            cached = self.get(period)
            if self._cache.is_fresh(cached) or key in self._pending:
                continue
            started.append(self._pending.start(key, self._prefetch_factory(period, cached)))
        if started:
            await asyncio.gather(*started)

    def _prefetch_factory(self, period: AvailabilityPeriod, cached: CacheEntry[T] | None):
        async def run() -> T | None:
            try:
                result = await self._fetch_from_network(period, cached.fingerprint if cached else None)
            except (httpx.HTTPError, FrontendFetchError, ValidationError, ValueError) as exc:
                logger.error(f"swr_prefetch_failed key={self.cache_key(period)} err={exc}")
                return None
            if result.data is not None:
                self.set(period, result.data, result.etag)
            elif cached is not None:
                self.touch(period)
            return result.data

        return run


def dashboard_cache(http: httpx.AsyncClient, default_ttl: float | None = None) -> SWRResourceCache[DashboardData]:
    return SWRResourceCache(http, "/api/dashboard", DashboardData, "dashboard", default_ttl)


def group_cache(
    http: httpx.AsyncClient,
    group_name: str,
    default_ttl: float | None = None,
) -> SWRResourceCache[GroupDashboardData]:
    return SWRResourceCache(
        http,
        f"/api/group/{quote(group_name, safe='')}",
        GroupDashboardData,
        f"group:{group_name}",
        default_ttl,
    )
