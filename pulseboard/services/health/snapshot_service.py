"""
健康快照服务
- 统一管理历史读取、刷新（主节点单航班探测）和时间线装配

刷新模式：
- never  ：只读历史；轮询间隔内复用进程内缓存
- missing：历史为空且存在活跃配置时才探测（避免首屏空白）
- always ：强制走探测路径；主节点在轮询间隔内刚刷新过时仍复用缓存（节流）
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from pulseboard.core.config import settings
from pulseboard.core.leadership import LeadershipCoordinator, LeadershipError
from pulseboard.core.logging import logger
from pulseboard.core.ttl_cache import SingleFlight, TTLCache
from pulseboard.schemas.health import (
    CheckResult,
    HealthStatus,
    HistorySnapshot,
    ProviderConfig,
    ProviderTimeline,
    RefreshMode,
)
from pulseboard.services.health.official_status import OfficialStatusRegistry
from pulseboard.utils.time_utils import Datetime

RunProviderChecks = Callable[[list[ProviderConfig]], Awaitable[list[CheckResult]]]

MAINTENANCE_MESSAGE = "配置处于维护模式"


class SnapshotStore(Protocol):
    async def fetch(
        self,
        allowed_ids: Iterable[str] | None = None,
        limit_per_config: int | None = None,
    ) -> HistorySnapshot: ...

    async def append(self, results: list[CheckResult]) -> None: ...


@dataclass
class SnapshotScope:
    cache_key: str
    poll_interval: float  # 秒
    active_configs: list[ProviderConfig]
    allowed_ids: set[str] = field(default_factory=set)
    limit_per_config: int | None = None


def build_scope_key(scope: str, poll_interval_ms: int, allowed_ids: Iterable[str], *extra: str) -> str:
    """(逻辑作用域, 轮询间隔, 附加维度, 排序后的配置集合) -> 缓存 key"""
    ids = sorted(set(allowed_ids))
    provider_key = "|".join(ids) if ids else "__empty__"
    return ":".join([scope, str(poll_interval_ms), *extra, provider_key])


class SnapshotService:
    def __init__(
        self,
        store: SnapshotStore,
        leadership: LeadershipCoordinator,
        run_checks: RunProviderChecks,
        official_status: OfficialStatusRegistry | None = None,
        cache: TTLCache[str, HistorySnapshot] | None = None,
        inflight: SingleFlight[str, HistorySnapshot] | None = None,
    ):
        self.store = store
        self.leadership = leadership
        self.run_checks = run_checks
        self.official_status = official_status or OfficialStatusRegistry()
        self.cache = cache or TTLCache(settings.SNAPSHOT_CACHE_TTL_SECONDS)
        self.inflight = inflight or SingleFlight()

    async def read_history(self, scope: SnapshotScope) -> HistorySnapshot:
        if not scope.allowed_ids:
            return {}
        return await self.store.fetch(
            allowed_ids=scope.allowed_ids,
            limit_per_config=scope.limit_per_config,
        )

    async def load_snapshot(
        self,
        scope: SnapshotScope,
        refresh_mode: RefreshMode = RefreshMode.MISSING,
    ) -> HistorySnapshot:
        if not scope.allowed_ids:
            return {}

        if refresh_mode is RefreshMode.NEVER:
            entry = self.cache.get(scope.cache_key)
            if self.cache.is_fresh(entry, max_age=scope.poll_interval):
                return entry.payload
            snapshot = await self.read_history(scope)
            self.cache.set(scope.cache_key, snapshot, ttl=scope.poll_interval)
            return snapshot

        # 读取是廉价操作，总是先读一次
        history = await self.read_history(scope)

        if refresh_mode is RefreshMode.ALWAYS:
            return await self._refresh(scope)
        if refresh_mode is RefreshMode.MISSING and scope.active_configs and not history:
            return await self._refresh(scope)
        return history

    async def _refresh(self, scope: SnapshotScope) -> HistorySnapshot:
        if not scope.active_configs:
            return {}

        started_at = self.cache.now()
        try:
            await self.leadership.ensure_leadership()
        except LeadershipError as exc:
            logger.error(f"snapshot_leader_election_failed scope={scope.cache_key} err={exc}")
            return await self.read_history(scope)

        if not self.leadership.is_leader():
            snapshot = await self.read_history(scope)
            self.cache.set(scope.cache_key, snapshot, ttl=scope.poll_interval)
            return snapshot

        entry = self.cache.get(scope.cache_key)
        if entry is not None and started_at - entry.timestamp < scope.poll_interval:
            return entry.payload

        return await self.inflight.run(scope.cache_key, lambda: self._probe_and_store(scope))

    async def _probe_and_store(self, scope: SnapshotScope) -> HistorySnapshot:
        logger.info(f"snapshot_refresh_started scope={scope.cache_key} configs={len(scope.active_configs)}")
        results = await self.run_checks(scope.active_configs)
        await self.store.append(results)
        snapshot = await self.read_history(scope)
        self.cache.set(scope.cache_key, snapshot, ttl=scope.poll_interval)
        logger.info(f"snapshot_refresh_finished scope={scope.cache_key} results={len(results)}")
        return snapshot

    def build_timelines(
        self,
        history: HistorySnapshot,
        maintenance_configs: list[ProviderConfig],
    ) -> list[ProviderTimeline]:
        return build_provider_timelines(history, maintenance_configs, self.official_status)


def build_provider_timelines(
    history: HistorySnapshot,
    maintenance_configs: list[ProviderConfig],
    official_status: OfficialStatusRegistry | None = None,
) -> list[ProviderTimeline]:
    """历史（已按 checked_at 倒序）+ 维护占位 -> 按名称排序的时间线"""
    attach = official_status.attach if official_status is not None else (lambda result: result)

    timelines = [
        ProviderTimeline(id=config_id, items=items, latest=attach(items[0]))
        for config_id, items in history.items()
        if items
    ]
    timelines.extend(
        ProviderTimeline(id=config.id, items=[], latest=attach(_maintenance_result(config)))
        for config in maintenance_configs
    )
    timelines.sort(key=lambda t: (t.latest.name.casefold(), t.latest.name, t.id))
    return timelines


def _maintenance_result(config: ProviderConfig) -> CheckResult:
    return CheckResult(
        id=config.id,
        name=config.name,
        type=config.type,
        endpoint=config.endpoint,
        model=config.model,
        status=HealthStatus.MAINTENANCE,
        latency_ms=None,
        ping_latency_ms=None,
        checked_at=config.updated_at or Datetime.to_iso_string(Datetime.now()),
        message=MAINTENANCE_MESSAGE,
        group_name=config.group_name or None,
    )
