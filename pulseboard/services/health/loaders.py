"""
只读数据加载器：配置、分组信息、可用率统计

三者都是持久化状态的纯函数，各自独立缓存（进程内 TTL），并记录命中计数。
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from pulseboard.core.config import settings
from pulseboard.core.database import AsyncSessionLocal
from pulseboard.core.logging import logger
from pulseboard.core.metrics import CacheMetrics
from pulseboard.core.ttl_cache import TTLCache
from pulseboard.models.check_config import CheckConfig
from pulseboard.models.group_info import GroupInfo
from pulseboard.repositories.availability_repository import AvailabilityRepository
from pulseboard.repositories.check_config_repository import CheckConfigRepository
from pulseboard.repositories.group_info_repository import GroupInfoRepository
from pulseboard.schemas.dashboard import GroupInfoSummary
from pulseboard.schemas.health import DEFAULT_ENDPOINTS, AvailabilityStatsMap, ProviderConfig, ProviderType
from pulseboard.utils.time_utils import Datetime

SessionFactory = Callable[[], AsyncSession]


def to_provider_config(row: CheckConfig) -> ProviderConfig:
    provider_type = ProviderType(row.type)
    return ProviderConfig(
        id=str(row.id),
        name=row.name,
        type=provider_type,
        model=row.model,
        endpoint=row.endpoint or DEFAULT_ENDPOINTS[provider_type],
        group_name=row.group_name or None,
        is_maintenance=bool(row.is_maintenance),
        api_key=row.api_key,
        updated_at=Datetime.to_iso_string(row.updated_at) if row.updated_at else None,
    )


class ConfigLoader:
    def __init__(self, session_factory: SessionFactory = AsyncSessionLocal, ttl: float | None = None):
        self._session_factory = session_factory
        self._cache: TTLCache[str, list[ProviderConfig]] = TTLCache(ttl or settings.CONFIG_CACHE_TTL_SECONDS)
        self.metrics = CacheMetrics("config")

    async def load(self) -> list[ProviderConfig]:
        entry = self._cache.get("all")
        if self._cache.is_fresh(entry):
            self.metrics.record_hit()
            return entry.payload

        self.metrics.record_miss()
        async with self._session_factory() as session:
            rows = await CheckConfigRepository(session).list_enabled()

        configs = []
        for row in rows:
            try:
                configs.append(to_provider_config(row))
            except (ValueError, ValidationError) as exc:
                # 未知 Provider 类型等脏数据跳过，不影响其他配置
                logger.warning(f"config_skipped id={row.id} type={row.type} err={exc}")
        self._cache.set("all", configs)
        return configs

    def invalidate(self) -> None:
        self._cache.clear()


class GroupInfoLoader:
    def __init__(self, session_factory: SessionFactory = AsyncSessionLocal, ttl: float | None = None):
        self._session_factory = session_factory
        self._cache: TTLCache[str, list[GroupInfoSummary]] = TTLCache(ttl or settings.GROUP_INFO_CACHE_TTL_SECONDS)
        self.metrics = CacheMetrics("group_info")

    async def load_all(self) -> list[GroupInfoSummary]:
        entry = self._cache.get("all")
        if self._cache.is_fresh(entry):
            self.metrics.record_hit()
            return entry.payload

        self.metrics.record_miss()
        async with self._session_factory() as session:
            rows: list[GroupInfo] = await GroupInfoRepository(session).list_all()
        infos = [
            GroupInfoSummary(group_name=row.group_name, website_url=row.website_url, tags=row.tags or "")
            for row in rows
        ]
        self._cache.set("all", infos)
        return infos

    async def get(self, group_name: str) -> GroupInfoSummary | None:
        for info in await self.load_all():
            if info.group_name == group_name:
                return info
        return None


class AvailabilityStatsLoader:
    def __init__(self, session_factory: SessionFactory = AsyncSessionLocal, ttl: float | None = None):
        self._session_factory = session_factory
        self._cache: TTLCache[str, AvailabilityStatsMap] = TTLCache(ttl or settings.AVAILABILITY_CACHE_TTL_SECONDS)
        self.metrics = CacheMetrics("availability")

    async def load(self, config_ids: Iterable[str]) -> AvailabilityStatsMap:
        ids = sorted(set(config_ids))
        key = "|".join(ids) or "__empty__"
        entry = self._cache.get(key)
        if self._cache.is_fresh(entry):
            self.metrics.record_hit()
            return entry.payload

        self.metrics.record_miss()
        async with self._session_factory() as session:
            stats = await AvailabilityRepository(session).stats_for(ids, Datetime.now())
        self._cache.set(key, stats)
        return stats
