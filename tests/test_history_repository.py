"""
历史存储测试（内存 SQLite）

SQLite 没有存储函数，fetch 直接走回退路径；
通过替换 _supports_sql_functions / _fetch_via_function 模拟 PostgreSQL 函数缺失与其他错误。
"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import ProgrammingError

from pulseboard.models import CheckHistory
from pulseboard.repositories.history_repository import (
    HistorySnapshotStore,
    clamp_retention_days,
    is_missing_function_error,
    map_rows_to_snapshot,
    normalize_allowed_ids,
)
from pulseboard.schemas.health import HealthStatus
from pulseboard.utils.time_utils import Datetime

from .conftest import make_config, make_result, seed_config, seed_history


@pytest.mark.asyncio
async def test_fallback_fetch_caps_and_orders_per_config(session_factory, db_session):
    a = await seed_config(db_session, "A")
    b = await seed_config(db_session, "B")
    await seed_history(db_session, a, 8)
    await seed_history(db_session, b, 2)

    store = HistorySnapshotStore(session_factory=session_factory, max_points_per_provider=5)
    snapshot = await store.fetch(allowed_ids=[str(a.id), str(b.id)])

    assert len(snapshot[str(a.id)]) == 5
    assert len(snapshot[str(b.id)]) == 2
    checked = [item.checked_at for item in snapshot[str(a.id)]]
    assert checked == sorted(checked, reverse=True)
    # 默认端点按类型补齐
    assert snapshot[str(a.id)][0].endpoint.startswith("https://api.openai.com")


@pytest.mark.asyncio
async def test_fetch_respects_allowed_ids(session_factory, db_session):
    a = await seed_config(db_session, "A")
    b = await seed_config(db_session, "B")
    await seed_history(db_session, a, 2)
    await seed_history(db_session, b, 2)

    store = HistorySnapshotStore(session_factory=session_factory)
    assert set(await store.fetch(allowed_ids=[str(b.id)])) == {str(b.id)}
    assert await store.fetch(allowed_ids=[]) == {}


@pytest.mark.asyncio
async def test_missing_function_falls_back_with_same_cap(session_factory, db_session, monkeypatch):
    a = await seed_config(db_session, "A")
    await seed_history(db_session, a, 7)

    store = HistorySnapshotStore(session_factory=session_factory, max_points_per_provider=3)

    async def missing(*_args, **_kwargs):
        raise ProgrammingError(
            "SELECT * FROM get_recent_check_history(...)",
            {},
            Exception("function get_recent_check_history(integer, uuid[]) does not exist"),
        )

    monkeypatch.setattr(HistorySnapshotStore, "_supports_sql_functions", staticmethod(lambda _session: True))
    monkeypatch.setattr(store, "_fetch_via_function", missing)

    snapshot = await store.fetch(allowed_ids=[str(a.id)])
    assert len(snapshot[str(a.id)]) == 3


@pytest.mark.asyncio
async def test_other_function_errors_degrade_to_empty(session_factory, db_session, monkeypatch):
    a = await seed_config(db_session, "A")
    await seed_history(db_session, a, 3)

    store = HistorySnapshotStore(session_factory=session_factory)

    async def broken(*_args, **_kwargs):
        raise ProgrammingError("SELECT 1", {}, Exception("permission denied for table check_history"))

    monkeypatch.setattr(HistorySnapshotStore, "_supports_sql_functions", staticmethod(lambda _session: True))
    monkeypatch.setattr(store, "_fetch_via_function", broken)

    assert await store.fetch(allowed_ids=[str(a.id)]) == {}


@pytest.mark.asyncio
async def test_append_inserts_and_prunes_expired_rows(session_factory, db_session):
    row = await seed_config(db_session, "A")
    old_start = Datetime.now() - timedelta(days=60)
    await seed_history(db_session, row, 2, start=old_start)

    config = make_config("A", config_id=str(row.id))
    store = HistorySnapshotStore(session_factory=session_factory, retention_days=30)
    await store.append([make_result(config, status=HealthStatus.DEGRADED, latency_ms=7000)])

    async with session_factory() as session:
        total = (await session.execute(select(func.count()).select_from(CheckHistory))).scalar_one()
    assert total == 1

    snapshot = await store.fetch(allowed_ids=[str(row.id)])
    assert snapshot[str(row.id)][0].status is HealthStatus.DEGRADED


def test_map_rows_to_snapshot_sorts_and_caps():
    now = Datetime.now()
    rows = [
        {
            "config_id": "c1",
            "status": "operational",
            "latency_ms": i,
            "ping_latency_ms": None,
            "checked_at": Datetime.to_iso_string(now - timedelta(minutes=i)),
            "message": None,
            "name": "A",
            "type": "anthropic",
            "model": "claude",
            "endpoint": None,
            "group_name": None,
        }
        for i in (3, 1, 2, 0)
    ]

    snapshot = map_rows_to_snapshot(rows, 2)

    assert [item.latency_ms for item in snapshot["c1"]] == [0, 1]
    assert snapshot["c1"][0].message == ""
    assert snapshot["c1"][0].endpoint == "https://api.anthropic.com/v1/messages"


def test_helpers():
    assert normalize_allowed_ids(None) is None
    assert normalize_allowed_ids(["", "not-a-uuid"]) == []
    assert clamp_retention_days(1) == 7
    assert clamp_retention_days(1000) == 365
    assert is_missing_function_error(Exception("prune_check_history does not exist"))
    assert not is_missing_function_error(Exception("timeout"))
