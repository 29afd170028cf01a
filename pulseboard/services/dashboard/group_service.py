"""
分组视图聚合

与 Dashboard 相同的组装流程，作用域限定为单个分组（"__ungrouped__" 表示未分组配置）。
分组不存在或没有任何配置时返回 None。
"""

from __future__ import annotations

from pulseboard.schemas.dashboard import GroupDashboardData
from pulseboard.schemas.health import (
    DEFAULT_TREND_PERIOD,
    UNGROUPED_DISPLAY_NAME,
    UNGROUPED_KEY,
    AvailabilityPeriod,
    RefreshMode,
)
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


class GroupDashboardService:
    def __init__(
        self,
        snapshot_service: SnapshotService,
        config_loader: ConfigLoader,
        group_info_loader: GroupInfoLoader,
        availability_loader: AvailabilityStatsLoader,
        response_cache: ScopedResponseCache[GroupDashboardData] | None = None,
        official_status_poller: OfficialStatusPoller | None = None,
    ):
        self.snapshot_service = snapshot_service
        self.config_loader = config_loader
        self.group_info_loader = group_info_loader
        self.availability_loader = availability_loader
        self.response_cache = response_cache or ScopedResponseCache("group_dashboard")
        self.official_status_poller = official_status_poller

    async def list_groups(self) -> list[str]:
        configs = await self.config_loader.load()
        names = {cfg.group_name for cfg in configs if cfg.group_name}
        if any(not cfg.group_name for cfg in configs):
            names.add(UNGROUPED_KEY)
        return sorted(names)

    async def load(
        self,
        group_name: str,
        refresh_mode: RefreshMode = RefreshMode.MISSING,
        trend_period: AvailabilityPeriod = DEFAULT_TREND_PERIOD,
    ) -> DashboardLoadResult[GroupDashboardData] | None:
        if self.official_status_poller is not None:
            self.official_status_poller.ensure_started()

        is_ungrouped = group_name == UNGROUPED_KEY
        group_configs = [
            cfg
            for cfg in await self.config_loader.load()
            if (not cfg.group_name if is_ungrouped else cfg.group_name == group_name)
        ]
        if not group_configs:
            return None

        active_configs, maintenance_configs = split_maintenance(group_configs)
        allowed_ids = {cfg.id for cfg in active_configs}
        interval_ms = poll_interval_ms()
        scope = SnapshotScope(
            cache_key=build_scope_key(f"group:{group_name}", interval_ms, allowed_ids),
            poll_interval=poll_interval_seconds(),
            active_configs=active_configs,
            allowed_ids=allowed_ids,
        )
        response_key = build_scope_key(f"group:{group_name}", interval_ms, allowed_ids, trend_period.value)

        async def compose() -> GroupDashboardData:
            history = await self.snapshot_service.load_snapshot(scope, refresh_mode)
            timelines = self.snapshot_service.build_timelines(history, maintenance_configs)
            availability = await self.availability_loader.load(cfg.id for cfg in group_configs)

            website_url, tags = None, ""
            if not is_ungrouped:
                info = await self.group_info_loader.get(group_name)
                if info is not None:
                    website_url, tags = info.website_url, info.tags

            return GroupDashboardData(
                group_name=group_name,
                display_name=UNGROUPED_DISPLAY_NAME if is_ungrouped else group_name,
                tags=tags,
                website_url=website_url,
                provider_timelines=timelines,
                last_updated=latest_checked_at(timelines),
                total=len(timelines),
                poll_interval_label=poll_interval_label(),
                poll_interval_ms=interval_ms,
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
