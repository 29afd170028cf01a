"""
Dashboard 聚合

快照（单航班刷新）+ 分组信息 + 可用率统计 -> DashboardData，带响应级缓存与 ETag。
"""

from __future__ import annotations

from pulseboard.schemas.dashboard import DashboardData
from pulseboard.schemas.health import DEFAULT_TREND_PERIOD, AvailabilityPeriod, ProviderConfig, RefreshMode
from pulseboard.services.dashboard.base import (
    DashboardLoadResult,
    ScopedResponseCache,
    latest_checked_at,
    split_maintenance,
)
from pulseboard.services.health.loaders import AvailabilityStatsLoader, ConfigLoader, GroupInfoLoader
from pulseboard.services.health.official_status import OfficialStatusPoller
from pulseboard.services.health.polling import poll_interval_label, poll_interval_ms, poll_interval_seconds
from pulseboard.services.health.snapshot_service import SnapshotScope, SnapshotService, build_scope_key
from pulseboard.utils.time_utils import Datetime

DASHBOARD_SCOPE = "dashboard"


def build_dashboard_snapshot_scope(active_configs: list[ProviderConfig]) -> SnapshotScope:
    """全量视图的快照作用域"""
    allowed_ids = {cfg.id for cfg in active_configs}
    return SnapshotScope(
        cache_key=build_scope_key(DASHBOARD_SCOPE, poll_interval_ms(), allowed_ids),
        poll_interval=poll_interval_seconds(),
        active_configs=active_configs,
        allowed_ids=allowed_ids,
    )


class DashboardService:
    def __init__(
        self,
        snapshot_service: SnapshotService,
        config_loader: ConfigLoader,
        group_info_loader: GroupInfoLoader,
        availability_loader: AvailabilityStatsLoader,
        response_cache: ScopedResponseCache[DashboardData] | None = None,
        official_status_poller: OfficialStatusPoller | None = None,
    ):
        self.snapshot_service = snapshot_service
        self.config_loader = config_loader
        self.group_info_loader = group_info_loader
        self.availability_loader = availability_loader
        self.response_cache = response_cache or ScopedResponseCache("dashboard")
        self.official_status_poller = official_status_poller

    async def load(
        self,
        refresh_mode: RefreshMode = RefreshMode.MISSING,
        trend_period: AvailabilityPeriod = DEFAULT_TREND_PERIOD,
    ) -> DashboardLoadResult[DashboardData]:
        if self.official_status_poller is not None:
            self.official_status_poller.ensure_started()

        all_configs = await self.config_loader.load()
        active_configs, maintenance_configs = split_maintenance(all_configs)
        scope = build_dashboard_snapshot_scope(active_configs)
        response_key = build_scope_key(
            DASHBOARD_SCOPE, poll_interval_ms(), scope.allowed_ids, trend_period.value
        )

        async def compose() -> DashboardData:
            history = await self.snapshot_service.load_snapshot(scope, refresh_mode)
            timelines = self.snapshot_service.build_timelines(history, maintenance_configs)
            group_infos = await self.group_info_loader.load_all()
            availability = await self.availability_loader.load(cfg.id for cfg in all_configs)
            return DashboardData(
                provider_timelines=timelines,
                group_infos=group_infos,
                last_updated=latest_checked_at(timelines),
                total=len(timelines),
                poll_interval_label=poll_interval_label(),
                poll_interval_ms=poll_interval_ms(),
                availability_stats=availability,
                trend_period=trend_period,
                generated_at=Datetime.now_ms(),
            )

        return await self.response_cache.get_or_compose(
            response_key,
            compose,
            ttl=scope.poll_interval,
            bypass=refresh_mode is RefreshMode.ALWAYS,
        )
