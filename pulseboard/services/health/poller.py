"""
后台健康轮询

每个轮询间隔以 always 模式刷新一次全量快照。轮询使用独立的快照 key，
/api/dashboard 的 never 读取不会刷新主节点的探测节流时间戳。
是否真正探测由快照服务的主节点判断决定：非主节点只读取历史。
"""

from __future__ import annotations

import asyncio

from pulseboard.core.config import settings
from pulseboard.core.logging import logger
from pulseboard.schemas.health import ProviderConfig, RefreshMode
from pulseboard.services.dashboard.base import split_maintenance
from pulseboard.services.health.loaders import ConfigLoader
from pulseboard.services.health.polling import poll_interval_ms, poll_interval_seconds
from pulseboard.services.health.snapshot_service import SnapshotScope, SnapshotService, build_scope_key

POLLER_SCOPE = "poller"


def build_poller_snapshot_scope(active_configs: list[ProviderConfig]) -> SnapshotScope:
    allowed_ids = {cfg.id for cfg in active_configs}
    return SnapshotScope(
        cache_key=build_scope_key(POLLER_SCOPE, poll_interval_ms(), allowed_ids),
        poll_interval=poll_interval_seconds(),
        active_configs=active_configs,
        allowed_ids=allowed_ids,
    )


class HealthPoller:
    def __init__(
        self,
        snapshot_service: SnapshotService,
        config_loader: ConfigLoader,
        interval: float | None = None,
        enabled: bool | None = None,
    ):
        self.snapshot_service = snapshot_service
        self.config_loader = config_loader
        self.interval = interval or poll_interval_seconds()
        self.enabled = settings.POLLER_ENABLED if enabled is None else enabled
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> int:
        """执行一轮刷新，返回快照中的配置数"""
        configs = await self.config_loader.load()
        active_configs, _ = split_maintenance(configs)
        scope = build_poller_snapshot_scope(active_configs)
        snapshot = await self.snapshot_service.load_snapshot(scope, RefreshMode.ALWAYS)
        return len(snapshot)

    def start(self) -> None:
        if not self.enabled or self.running:
            return
        logger.info(f"health_poller_started interval={self.interval}s")
        self._task = asyncio.create_task(self._run(), name="health-poller")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("health_poller_stopped")

    async def _run(self) -> None:
        while True:
            try:
                count = await self.tick()
                logger.debug(f"health_poller_tick providers={count}")
            except Exception as exc:
                logger.error(f"health_poller_tick_failed err={exc}")
            await asyncio.sleep(self.interval)
