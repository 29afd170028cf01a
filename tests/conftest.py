"""
测试全局配置

- 禁用真实 Redis / PostgreSQL：Redis 使用内存 DummyRedis，数据库使用内存 SQLite (aiosqlite)
- 关闭文件日志与异步日志队列，避免测试进程退出不干净
"""
from __future__ import annotations

import os
import uuid
from collections.abc import AsyncGenerator, Iterable
from datetime import datetime, timedelta
from typing import Any

# 必须在导入 pulseboard 之前设置
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FILE_PATH", "")
os.environ.setdefault("LOG_ASYNC", "false")
os.environ.setdefault("POLLER_ENABLED", "false")
os.environ.setdefault("OFFICIAL_STATUS_ENABLED", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pulseboard.core.config import settings
from pulseboard.models import Base, CheckConfig, CheckHistory, GroupInfo
from pulseboard.schemas.health import CheckResult, HealthStatus, ProviderConfig, ProviderType
from pulseboard.utils.time_utils import Datetime

settings.REDIS_URL = ""


class DummyRedis:
    """
    轻量内存 Redis 替身，覆盖租约所需方法：
    - get/set(nx, px)/delete
    - eval：识别续期（pexpire）与释放（del）两个脚本
    """

    def __init__(self):
        self.store: dict[str, Any] = {}
        self.ttl_ms: dict[str, int] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")

    async def get(self, key: str):
        self._check()
        return self.store.get(key)

    async def set(self, key: str, value, ex=None, px=None, nx: bool | None = None):
        self._check()
        if nx and key in self.store:
            return None
        self.store[key] = value
        if px is not None:
            self.ttl_ms[key] = px
        return True

    async def delete(self, *keys):
        self._check()
        removed = 0
        for k in keys:
            if self.store.pop(k, None) is not None:
                removed += 1
            self.ttl_ms.pop(k, None)
        return removed

    async def eval(self, script: str, numkeys: int, *args):
        self._check()
        keys, argv = list(args[:numkeys]), list(args[numkeys:])
        key = keys[0]
        if self.store.get(key) != argv[0]:
            return 0
        if "pexpire" in script:
            self.ttl_ms[key] = int(argv[1])
            return 1
        if "del" in script:
            return await self.delete(key)
        return 0

    def expire_now(self, key: str) -> None:
        """模拟租约过期"""
        self.store.pop(key, None)
        self.ttl_ms.pop(key, None)

    async def aclose(self):
        return None


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class FakeLeadership:
    def __init__(self, leader: bool = True, error: Exception | None = None):
        self.leader = leader
        self.error = error
        self.calls = 0

    async def ensure_leadership(self) -> None:
        self.calls += 1
        if self.error is not None:
            raise self.error

    def is_leader(self) -> bool:
        return self.leader


def make_config(
    name: str,
    *,
    config_id: str | None = None,
    provider_type: ProviderType = ProviderType.OPENAI,
    group_name: str | None = None,
    is_maintenance: bool = False,
) -> ProviderConfig:
    return ProviderConfig(
        id=config_id or str(uuid.uuid4()),
        name=name,
        type=provider_type,
        model="gpt-4o-mini",
        endpoint="https://api.example.com/v1/chat/completions",
        group_name=group_name,
        is_maintenance=is_maintenance,
        api_key="sk-test",
        updated_at="2026-10-01T00:00:00+00:00",
    )


def make_result(
    config: ProviderConfig,
    *,
    status: HealthStatus = HealthStatus.OPERATIONAL,
    latency_ms: int | None = 120,
    checked_at: datetime | None = None,
    message: str = "正常",
) -> CheckResult:
    return CheckResult(
        id=config.id,
        name=config.name,
        type=config.type,
        endpoint=config.endpoint,
        model=config.model,
        status=status,
        latency_ms=latency_ms,
        ping_latency_ms=30 if latency_ms is not None else None,
        checked_at=Datetime.to_iso_string(checked_at or Datetime.now()),
        message=message,
        group_name=config.group_name,
    )


class FakeSnapshotStore:
    """内存历史存储：append 追加，fetch 按配置倒序返回"""

    def __init__(self):
        self.rows: list[CheckResult] = []
        self.fetch_calls = 0
        self.append_calls = 0

    async def fetch(self, allowed_ids: Iterable[str] | None = None, limit_per_config: int | None = None):
        self.fetch_calls += 1
        ids = set(allowed_ids) if allowed_ids is not None else None
        history: dict[str, list[CheckResult]] = {}
        for row in self.rows:
            if ids is not None and row.id not in ids:
                continue
            history.setdefault(row.id, []).append(row)
        for items in history.values():
            items.sort(key=lambda r: r.checked_at, reverse=True)
            if limit_per_config:
                del items[limit_per_config:]
        return history

    async def append(self, results: list[CheckResult]) -> None:
        self.append_calls += 1
        self.rows.extend(results)


class RecordingProbe:
    """记录每次探测的配置列表，按配置生成 operational 结果"""

    def __init__(self, status: HealthStatus = HealthStatus.OPERATIONAL, gate=None):
        self.calls: list[list[str]] = []
        self.status = status
        self.gate = gate
        self.tick = 0

    async def __call__(self, configs: list[ProviderConfig]) -> list[CheckResult]:
        self.calls.append([cfg.id for cfg in configs])
        if self.gate is not None:
            await self.gate.wait()
        self.tick += 1
        checked_at = Datetime.now() + timedelta(seconds=self.tick)
        return [make_result(cfg, status=self.status, checked_at=checked_at) for cfg in configs]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dummy_redis() -> DummyRedis:
    return DummyRedis()


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


async def seed_config(
    session: AsyncSession,
    name: str,
    *,
    provider_type: str = "openai",
    group_name: str | None = None,
    is_maintenance: bool = False,
    enabled: bool = True,
) -> CheckConfig:
    row = CheckConfig(
        name=name,
        type=provider_type,
        model="gpt-4o-mini",
        endpoint=None,
        api_key="sk-test",
        group_name=group_name,
        enabled=enabled,
        is_maintenance=is_maintenance,
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row


async def seed_history(
    session: AsyncSession,
    config: CheckConfig,
    count: int,
    *,
    status: str = "operational",
    start: datetime | None = None,
) -> None:
    start = start or Datetime.now() - timedelta(hours=count)
    session.add_all(
        CheckHistory(
            config_id=config.id,
            status=status,
            latency_ms=100 + i,
            ping_latency_ms=20,
            checked_at=start + timedelta(minutes=i),
            message="正常",
        )
        for i in range(count)
    )
    await session.commit()


async def seed_group_info(session: AsyncSession, group_name: str, website_url: str, tags: str) -> GroupInfo:
    row = GroupInfo(group_name=group_name, website_url=website_url, tags=tags)
    session.add(row)
    await session.commit()
    return row
