"""
官方状态页轮询

定期读取各 Provider 官方 statuspage（status.json），结果按 Provider 类型缓存在内存，
在组装时间线时附加到 latest 结果上（不落库）。
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx

from pulseboard.core.config import settings
from pulseboard.core.http_client import create_async_http_client
from pulseboard.core.logging import logger
from pulseboard.schemas.health import CheckResult, OfficialStatus, ProviderType
from pulseboard.utils.time_utils import Datetime

# statuspage indicator -> 展示状态
INDICATOR_STATUS = {
    "none": "operational",
    "minor": "degraded",
    "maintenance": "degraded",
    "major": "down",
    "critical": "down",
}


class OfficialStatusRegistry:
    """按 Provider 类型查询最近一次官方状态"""

    def __init__(self) -> None:
        self._statuses: dict[ProviderType, OfficialStatus] = {}

    def get(self, provider_type: ProviderType) -> OfficialStatus | None:
        return self._statuses.get(provider_type)

    def update(self, provider_type: ProviderType, status: OfficialStatus) -> None:
        self._statuses[provider_type] = status

    def attach(self, result: CheckResult) -> CheckResult:
        official = self.get(result.type)
        if official is None:
            return result
        return result.model_copy(update={"official_status": official})


def parse_statuspage_payload(payload: dict) -> OfficialStatus:
    status_block = payload.get("status") or {}
    indicator = status_block.get("indicator")
    return OfficialStatus(
        status=INDICATOR_STATUS.get(indicator, "unknown"),
        message=status_block.get("description") or "",
        checked_at=Datetime.to_iso_string(Datetime.now()),
    )


class OfficialStatusPoller:
    def __init__(
        self,
        registry: OfficialStatusRegistry,
        urls: dict[str, str] | None = None,
        interval: float | None = None,
        enabled: bool | None = None,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ):
        self.registry = registry
        self.urls = urls if urls is not None else dict(settings.OFFICIAL_STATUS_URLS)
        self.interval = interval or settings.OFFICIAL_STATUS_INTERVAL_SECONDS
        self.enabled = settings.OFFICIAL_STATUS_ENABLED if enabled is None else enabled
        self._client_factory = client_factory or (lambda: create_async_http_client(timeout=10.0))
        self._task: asyncio.Task | None = None

    async def refresh(self) -> None:
        async with self._client_factory() as client:
            for raw_type, url in self.urls.items():
                try:
                    provider_type = ProviderType(raw_type)
                except ValueError:
                    logger.warning(f"official_status_unknown_provider type={raw_type}")
                    continue
                try:
                    resp = await client.get(url)
                    resp.raise_for_status()
                    status = parse_statuspage_payload(resp.json())
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning(f"official_status_fetch_failed type={raw_type} err={exc}")
                    continue
                self.registry.update(provider_type, status)

    def ensure_started(self) -> None:
        """幂等：已在运行或未启用时直接返回"""
        if not self.enabled or not self.urls:
            return
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="official-status-poller")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as exc:
                logger.error(f"official_status_poll_error err={exc}")
            await asyncio.sleep(self.interval)
