"""
快照刷新服务测试

- 单航班：并发 always 请求只触发一次探测
- 轮询间隔内主节点复用缓存（包括 always 模式）
- 非主节点 / 选举失败不探测
- 维护配置生成占位时间线
- 时间线排序稳定
"""
import asyncio

import pytest

from pulseboard.core.leadership import LeadershipError
from pulseboard.core.ttl_cache import TTLCache
from pulseboard.schemas.health import HealthStatus, OfficialStatus, ProviderType, RefreshMode
from pulseboard.services.health.official_status import OfficialStatusRegistry
from pulseboard.services.health.snapshot_service import (
    MAINTENANCE_MESSAGE,
    SnapshotScope,
    SnapshotService,
    build_provider_timelines,
    build_scope_key,
)

from .conftest import FakeClock, FakeLeadership, FakeSnapshotStore, RecordingProbe, make_config, make_result


def _scope(configs, poll_interval: float = 60) -> SnapshotScope:
    ids = {cfg.id for cfg in configs}
    return SnapshotScope(
        cache_key=build_scope_key("dashboard", int(poll_interval * 1000), ids),
        poll_interval=poll_interval,
        active_configs=list(configs),
        allowed_ids=ids,
    )


def _service(store, leadership, probe, clock=None) -> SnapshotService:
    return SnapshotService(
        store,
        leadership,
        probe,
        cache=TTLCache(300, clock=clock or FakeClock()),
    )


def test_scope_key_sorts_ids_and_marks_empty():
    assert build_scope_key("dashboard", 60000, ["b", "a", "b"]) == "dashboard:60000:a|b"
    assert build_scope_key("dashboard", 60000, [], "7d") == "dashboard:60000:7d:__empty__"


@pytest.mark.asyncio
async def test_concurrent_always_requests_probe_once():
    configs = [make_config("A"), make_config("B")]
    gate = asyncio.Event()
    probe = RecordingProbe(gate=gate)
    store = FakeSnapshotStore()
    service = _service(store, FakeLeadership(), probe)
    scope = _scope(configs)

    tasks = [asyncio.create_task(service.load_snapshot(scope, RefreshMode.ALWAYS)) for _ in range(100)]
    await asyncio.sleep(0.01)
    gate.set()
    results = await asyncio.gather(*tasks)

    assert len(probe.calls) == 1
    assert store.append_calls == 1
    assert all(result == results[0] for result in results)
    assert set(results[0]) == {cfg.id for cfg in configs}


@pytest.mark.asyncio
async def test_never_mode_reuses_cache_within_poll_interval():
    clock = FakeClock()
    configs = [make_config("A")]
    store = FakeSnapshotStore()
    store.rows.append(make_result(configs[0]))
    probe = RecordingProbe()
    service = _service(store, FakeLeadership(), probe, clock)
    scope = _scope(configs, poll_interval=60)

    await service.load_snapshot(scope, RefreshMode.NEVER)
    clock.advance(30)
    await service.load_snapshot(scope, RefreshMode.NEVER)
    assert store.fetch_calls == 1

    clock.advance(31)
    await service.load_snapshot(scope, RefreshMode.NEVER)
    assert store.fetch_calls == 2
    assert probe.calls == []


@pytest.mark.asyncio
async def test_non_leader_never_probes():
    configs = [make_config("A")]
    store = FakeSnapshotStore()
    probe = RecordingProbe()
    service = _service(store, FakeLeadership(leader=False), probe)
    scope = _scope(configs)

    for mode in (RefreshMode.ALWAYS, RefreshMode.MISSING, RefreshMode.ALWAYS):
        snapshot = await service.load_snapshot(scope, mode)
        assert snapshot == {}

    assert probe.calls == []
    assert store.append_calls == 0


@pytest.mark.asyncio
async def test_leadership_failure_falls_back_to_read():
    configs = [make_config("A")]
    store = FakeSnapshotStore()
    store.rows.append(make_result(configs[0]))
    probe = RecordingProbe()
    service = _service(store, FakeLeadership(error=LeadershipError("down")), probe)

    snapshot = await service.load_snapshot(_scope(configs), RefreshMode.ALWAYS)

    assert probe.calls == []
    assert [item.id for item in snapshot[configs[0].id]] == [configs[0].id]


@pytest.mark.asyncio
async def test_missing_mode_probes_only_when_history_empty():
    configs = [make_config("A")]
    store = FakeSnapshotStore()
    probe = RecordingProbe()
    service = _service(store, FakeLeadership(), probe)
    scope = _scope(configs)

    first = await service.load_snapshot(scope, RefreshMode.MISSING)
    second = await service.load_snapshot(scope, RefreshMode.MISSING)

    assert len(probe.calls) == 1
    assert first == second
    assert len(first[configs[0].id]) == 1


@pytest.mark.asyncio
async def test_empty_scope_short_circuits():
    store = FakeSnapshotStore()
    probe = RecordingProbe()
    service = _service(store, FakeLeadership(), probe)

    assert await service.load_snapshot(_scope([]), RefreshMode.ALWAYS) == {}
    assert store.fetch_calls == 0
    assert probe.calls == []


@pytest.mark.asyncio
async def test_leader_reuses_recent_refresh_even_in_always_mode():
    clock = FakeClock()
    configs = [make_config("A")]
    store = FakeSnapshotStore()
    probe = RecordingProbe()
    service = _service(store, FakeLeadership(), probe, clock)
    scope = _scope(configs, poll_interval=60)

    first = await service.load_snapshot(scope, RefreshMode.ALWAYS)
    clock.advance(10)
    second = await service.load_snapshot(scope, RefreshMode.ALWAYS)
    assert len(probe.calls) == 1
    assert second == first

    clock.advance(60)
    await service.load_snapshot(scope, RefreshMode.ALWAYS)
    assert len(probe.calls) == 2


@pytest.mark.asyncio
async def test_probe_failure_propagates_and_clears_inflight():
    configs = [make_config("A")]

    async def broken(_configs):
        raise RuntimeError("probe crashed")

    service = _service(FakeSnapshotStore(), FakeLeadership(), broken)
    scope = _scope(configs)

    with pytest.raises(RuntimeError):
        await service.load_snapshot(scope, RefreshMode.ALWAYS)
    assert scope.cache_key not in service.inflight


@pytest.mark.asyncio
async def test_maintenance_config_gets_placeholder_and_is_not_probed():
    active = make_config("A")
    maintenance = make_config("B", is_maintenance=True)
    store = FakeSnapshotStore()
    probe = RecordingProbe()
    service = _service(store, FakeLeadership(), probe)

    history = await service.load_snapshot(_scope([active]), RefreshMode.MISSING)
    timelines = service.build_timelines(history, [maintenance])

    assert probe.calls == [[active.id]]
    assert [t.id for t in timelines] == [active.id, maintenance.id]
    assert timelines[0].latest.status is HealthStatus.OPERATIONAL
    placeholder = timelines[1]
    assert placeholder.items == []
    assert placeholder.latest.status is HealthStatus.MAINTENANCE
    assert placeholder.latest.latency_ms is None
    assert placeholder.latest.message == MAINTENANCE_MESSAGE
    assert placeholder.latest.checked_at == maintenance.updated_at


def test_timelines_sorted_case_insensitively_and_stable():
    beta = make_config("beta", config_id="2")
    alpha = make_config("Alpha", config_id="1")
    gamma = make_config("Gamma", config_id="3", is_maintenance=True)
    history = {
        beta.id: [make_result(beta)],
        alpha.id: [make_result(alpha)],
    }

    first = build_provider_timelines(history, [gamma])
    second = build_provider_timelines(dict(reversed(list(history.items()))), [gamma])

    assert [t.latest.name for t in first] == ["Alpha", "beta", "Gamma"]
    assert [t.id for t in first] == [t.id for t in second]


def test_official_status_attached_to_latest_only():
    config = make_config("A", provider_type=ProviderType.OPENAI)
    registry = OfficialStatusRegistry()
    registry.update(
        ProviderType.OPENAI,
        OfficialStatus(status="degraded", message="Partial outage", checked_at="2026-10-16T00:00:00+00:00"),
    )
    items = [make_result(config), make_result(config)]

    (timeline,) = build_provider_timelines({config.id: items}, [], registry)

    assert timeline.latest.official_status.status == "degraded"
    assert timeline.items[0].official_status is None
