"""
探测历史存储

- fetch：优先调用 PostgreSQL 函数 get_recent_check_history（库内按配置截断）
  函数缺失时回退为全表扫描 + 进程内排序截断，两条路径的截断上限一致
- append：写入结果后顺带清理过期历史
- prune：优先调用 prune_check_history，缺失时回退为按时间删除
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import bindparam, delete, select, text
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pulseboard.core.config import MAX_RETENTION_DAYS, MIN_RETENTION_DAYS, settings
from pulseboard.core.database import AsyncSessionLocal
from pulseboard.core.logging import logger
from pulseboard.models.check_history import CheckHistory
from pulseboard.schemas.health import DEFAULT_ENDPOINTS, CheckResult, HistorySnapshot, ProviderType
from pulseboard.utils.time_utils import Datetime

RPC_RECENT_HISTORY = "get_recent_check_history"
RPC_PRUNE_HISTORY = "prune_check_history"

_RECENT_HISTORY_SQL = text(
    f"SELECT * FROM {RPC_RECENT_HISTORY}(:limit_per_config, :target_config_ids)"
).bindparams(
    bindparam("target_config_ids", type_=postgresql.ARRAY(postgresql.UUID(as_uuid=True))),
)
_PRUNE_HISTORY_SQL = text(f"SELECT {RPC_PRUNE_HISTORY}(:retention_days)")


class HistorySnapshotStore:
    """统一的历史读 / 写 / 清理入口，读失败降级为空快照"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        max_points_per_provider: int | None = None,
        retention_days: int | None = None,
    ):
        self._session_factory = session_factory
        self.max_points_per_provider = max_points_per_provider or settings.MAX_POINTS_PER_PROVIDER
        self.retention_days = retention_days or settings.HISTORY_RETENTION_DAYS

    async def fetch(
        self,
        allowed_ids: Iterable[str] | None = None,
        limit_per_config: int | None = None,
    ) -> HistorySnapshot:
        normalized_ids = normalize_allowed_ids(allowed_ids)
        if normalized_ids is not None and not normalized_ids:
            return {}

        limit = limit_per_config or self.max_points_per_provider
        async with self._session_factory() as session:
            if not self._supports_sql_functions(session):
                return await self._fallback_fetch(session, normalized_ids, limit)
            try:
                rows = await self._fetch_via_function(session, normalized_ids, limit)
            except SQLAlchemyError as exc:
                logger.error(f"history_fetch_failed err={exc}")
                await session.rollback()
                if is_missing_function_error(exc):
                    return await self._fallback_fetch(session, normalized_ids, limit)
                return {}

        return map_rows_to_snapshot(rows, limit)

    async def append(self, results: list[CheckResult]) -> None:
        if not results:
            return

        records = [
            CheckHistory(
                config_id=uuid.UUID(result.id),
                status=result.status.value,
                latency_ms=result.latency_ms,
                ping_latency_ms=result.ping_latency_ms,
                checked_at=Datetime.from_iso_string(result.checked_at),
                message=result.message,
            )
            for result in results
        ]

        async with self._session_factory() as session:
            try:
                session.add_all(records)
                await session.commit()
            except SQLAlchemyError as exc:
                logger.error(f"history_append_failed count={len(records)} err={exc}")
                await session.rollback()
                return

            await self._prune(session, self.retention_days)

    async def prune(self, retention_days: int | None = None) -> None:
        async with self._session_factory() as session:
            await self._prune(session, retention_days or self.retention_days)

    # ------------------------------------------------------------------

    @staticmethod
    def _supports_sql_functions(session: AsyncSession) -> bool:
        bind = session.get_bind()
        return bind.dialect.name == "postgresql"

    async def _fetch_via_function(
        self,
        session: AsyncSession,
        allowed_ids: list[uuid.UUID] | None,
        limit: int,
    ) -> list[Mapping[str, Any]]:
        result = await session.execute(
            _RECENT_HISTORY_SQL,
            {"limit_per_config": limit, "target_config_ids": allowed_ids},
        )
        return [row._mapping for row in result.all()]

    async def _fallback_fetch(
        self,
        session: AsyncSession,
        allowed_ids: list[uuid.UUID] | None,
        limit: int,
    ) -> HistorySnapshot:
        try:
            stmt = select(CheckHistory).order_by(CheckHistory.checked_at.desc())
            if allowed_ids is not None:
                stmt = stmt.where(CheckHistory.config_id.in_(allowed_ids))
            result = await session.execute(stmt)
            records = result.unique().scalars().all()
        except SQLAlchemyError as exc:
            logger.error(f"history_fallback_fetch_failed err={exc}")
            return {}

        rows = []
        for record in records:
            config = record.config
            if config is None:
                continue
            rows.append(
                {
                    "config_id": record.config_id,
                    "status": record.status,
                    "latency_ms": record.latency_ms,
                    "ping_latency_ms": record.ping_latency_ms,
                    "checked_at": record.checked_at,
                    "message": record.message,
                    "name": config.name,
                    "type": config.type,
                    "model": config.model,
                    "endpoint": config.endpoint,
                    "group_name": config.group_name,
                }
            )
        return map_rows_to_snapshot(rows, limit)

    async def _prune(self, session: AsyncSession, retention_days: int) -> None:
        effective_days = clamp_retention_days(retention_days)
        if self._supports_sql_functions(session):
            try:
                await session.execute(_PRUNE_HISTORY_SQL, {"retention_days": effective_days})
                await session.commit()
                return
            except SQLAlchemyError as exc:
                logger.error(f"history_prune_failed err={exc}")
                await session.rollback()
                if not is_missing_function_error(exc):
                    return

        cutoff = Datetime.now() - timedelta(days=effective_days)
        try:
            await session.execute(delete(CheckHistory).where(CheckHistory.checked_at < cutoff))
            await session.commit()
        except SQLAlchemyError as exc:
            logger.error(f"history_fallback_prune_failed err={exc}")
            await session.rollback()


def normalize_allowed_ids(ids: Iterable[str] | None) -> list[uuid.UUID] | None:
    """None 表示不过滤；空列表表示无可读配置"""
    if ids is None:
        return None
    normalized = []
    for raw in ids:
        if not raw:
            continue
        try:
            normalized.append(uuid.UUID(str(raw)))
        except ValueError:
            logger.warning(f"history_invalid_config_id id={raw}")
    return normalized


def is_missing_function_error(exc: BaseException) -> bool:
    message = str(exc)
    return RPC_RECENT_HISTORY in message or RPC_PRUNE_HISTORY in message


def clamp_retention_days(days: int) -> int:
    return max(MIN_RETENTION_DAYS, min(MAX_RETENTION_DAYS, days))


def map_rows_to_snapshot(
    rows: Iterable[Mapping[str, Any]] | None,
    limit_per_config: int,
) -> HistorySnapshot:
    """按配置分组、按 checked_at 倒序并截断"""
    grouped: dict[str, list[tuple[datetime, CheckResult]]] = {}
    for row in rows or []:
        checked_at = row["checked_at"]
        if isinstance(checked_at, str):
            checked_at = Datetime.from_iso_string(checked_at)
        checked_at = Datetime.ensure_aware(checked_at)

        provider_type = ProviderType(row["type"])
        result = CheckResult(
            id=str(row["config_id"]),
            name=row["name"],
            type=provider_type,
            endpoint=row["endpoint"] or DEFAULT_ENDPOINTS[provider_type],
            model=row["model"],
            status=row["status"],
            latency_ms=row["latency_ms"],
            ping_latency_ms=row["ping_latency_ms"],
            checked_at=Datetime.to_iso_string(checked_at),
            message=row["message"] or "",
            group_name=row["group_name"],
        )
        grouped.setdefault(result.id, []).append((checked_at, result))

    history: HistorySnapshot = {}
    for config_id, items in grouped.items():
        items.sort(key=lambda pair: pair[0], reverse=True)
        history[config_id] = [result for _, result in items[:limit_per_config]]
    return history
