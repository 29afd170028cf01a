"""
健康看板运行时装配

进程内只装配一次（lifespan 中），路由通过依赖从 app.state 取用。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from pulseboard.core.database import AsyncSessionLocal
from pulseboard.core.leadership import LeadershipCoordinator, RedisLeaderElection
from pulseboard.repositories.history_repository import HistorySnapshotStore
from pulseboard.services.dashboard.dashboard_service import DashboardService
from pulseboard.services.dashboard.group_service import GroupDashboardService
from pulseboard.services.health.loaders import AvailabilityStatsLoader, ConfigLoader, GroupInfoLoader
from pulseboard.services.health.official_status import OfficialStatusPoller, OfficialStatusRegistry
from pulseboard.services.health.poller import HealthPoller
from pulseboard.services.health.provider_checks import run_provider_checks
from pulseboard.services.health.snapshot_service import RunProviderChecks, SnapshotService


@dataclass
class HealthRuntime:
    leadership: LeadershipCoordinator
    snapshot_service: SnapshotService
    config_loader: ConfigLoader
    group_info_loader: GroupInfoLoader
    availability_loader: AvailabilityStatsLoader
    dashboard_service: DashboardService
    group_service: GroupDashboardService
    official_status_poller: OfficialStatusPoller
    health_poller: HealthPoller

    async def start(self) -> None:
        self.official_status_poller.ensure_started()
        self.health_poller.start()

    async def stop(self) -> None:
        await self.health_poller.stop()
        await self.official_status_poller.stop()
        release = getattr(self.leadership, "release", None)
        if release is not None:
            await release()


def build_health_runtime(
    session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    leadership: LeadershipCoordinator | None = None,
    run_checks: RunProviderChecks = run_provider_checks,
    official_status_poller: OfficialStatusPoller | None = None,
    poller_enabled: bool | None = None,
) -> HealthRuntime:
    leadership = leadership or RedisLeaderElection()
    registry = official_status_poller.registry if official_status_poller else OfficialStatusRegistry()
    official_status_poller = official_status_poller or OfficialStatusPoller(registry)

    store = HistorySnapshotStore(session_factory=session_factory)
    snapshot_service = SnapshotService(store, leadership, run_checks, official_status=registry)
    config_loader = ConfigLoader(session_factory)
    group_info_loader = GroupInfoLoader(session_factory)
    availability_loader = AvailabilityStatsLoader(session_factory)

    collaborators = (snapshot_service, config_loader, group_info_loader, availability_loader)
    return HealthRuntime(
        leadership=leadership,
        snapshot_service=snapshot_service,
        config_loader=config_loader,
        group_info_loader=group_info_loader,
        availability_loader=availability_loader,
        dashboard_service=DashboardService(*collaborators, official_status_poller=official_status_poller),
        group_service=GroupDashboardService(*collaborators, official_status_poller=official_status_poller),
        official_status_poller=official_status_poller,
        health_poller=HealthPoller(snapshot_service, config_loader, enabled=poller_enabled),
    )


def get_health_runtime(request: Request) -> HealthRuntime:
    runtime = getattr(request.app.state, "health", None)
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="health runtime not ready")
    return runtime


def get_dashboard_service(request: Request) -> DashboardService:
    return get_health_runtime(request).dashboard_service


def get_group_service(request: Request) -> GroupDashboardService:
    return get_health_runtime(request).group_service
