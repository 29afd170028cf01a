from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pulseboard.models.check_history import CheckHistory
from pulseboard.schemas.health import AvailabilityPeriod, AvailabilityStat, AvailabilityStatsMap, HealthStatus

PERIOD_DAYS: dict[AvailabilityPeriod, int] = {
    AvailabilityPeriod.D7: 7,
    AvailabilityPeriod.D15: 15,
    AvailabilityPeriod.D30: 30,
}


class AvailabilityRepository:
    """按时间窗口统计每个配置的可用率"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def stats_for(self, config_ids: Iterable[str], now: datetime) -> AvailabilityStatsMap:
        ids = [uuid.UUID(cid) for cid in config_ids]
        if not ids:
            return {}

        stats: AvailabilityStatsMap = {str(cid): [] for cid in ids}
        operational = func.sum(case((CheckHistory.status == HealthStatus.OPERATIONAL.value, 1), else_=0))
        for period, days in PERIOD_DAYS.items():
            since = now - timedelta(days=days)
            result = await self.session.execute(
                select(CheckHistory.config_id, func.count(), operational)
                .where(CheckHistory.config_id.in_(ids), CheckHistory.checked_at >= since)
                .group_by(CheckHistory.config_id)
            )
            counts = {str(row[0]): (int(row[1] or 0), int(row[2] or 0)) for row in result.all()}
            for cid in stats:
                total, ok = counts.get(cid, (0, 0))
                stats[cid].append(
                    AvailabilityStat(
                        period=period,
                        total_checks=total,
                        operational_count=ok,
                        availability_pct=round(ok / total * 100, 2) if total else None,
                    )
                )
        return stats
