"""
进程内 TTL 缓存与单航班（single-flight）去重

快照刷新、响应聚合、前端 SWR 客户端共用同一套实现：
- TTLCache：按 key 保存最近一次载荷、刷新时间戳、TTL 与可选指纹（ETag）
- SingleFlight：同一 key 同时最多一个进行中的任务，并发调用方复用同一结果

两者都不做 I/O，时间源可注入，便于测试。
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    payload: V
    timestamp: float
    ttl: float
    fingerprint: str | None = None


class TTLCache(Generic[K, V]):
    """按 key 的 TTL 缓存，时间戳使用单调时钟（秒）"""

    def __init__(self, default_ttl: float, clock: Callable[[], float] = time.monotonic):
        if not _is_positive(default_ttl):
            raise ValueError("default_ttl must be a finite positive number")
        self.default_ttl = float(default_ttl)
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}

    def now(self) -> float:
        return self._clock()

    def resolve_ttl(self, interval: float | None) -> float:
        """轮询间隔为有限正数时直接作为 TTL，否则回退默认值"""
        if _is_positive(interval):
            return float(interval)
        return self.default_ttl

    def get(self, key: K) -> CacheEntry[V] | None:
        return self._entries.get(key)

    def set(
        self,
        key: K,
        payload: V,
        *,
        ttl: float | None = None,
        fingerprint: str | None = None,
    ) -> CacheEntry[V]:
        entry = CacheEntry(
            payload=payload,
            timestamp=self.now(),
            ttl=self.resolve_ttl(ttl),
            fingerprint=fingerprint,
        )
        self._entries[key] = entry
        return entry

    def touch(self, key: K) -> None:
        """仅刷新时间戳（304 / 未变化时使用），不改动载荷"""
        entry = self._entries.get(key)
        if entry is not None:
            entry.timestamp = self.now()

    def clear(self) -> None:
        self._entries.clear()

    def is_expired(self, entry: CacheEntry[V]) -> bool:
        return self.now() - entry.timestamp >= entry.ttl

    def is_fresh(self, entry: CacheEntry[V] | None, max_age: float | None = None) -> bool:
        if entry is None:
            return False
        if max_age is None:
            return not self.is_expired(entry)
        return self.now() - entry.timestamp < max_age

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class SingleFlight(Generic[K, V]):
    """
    同一 key 同时只允许一个进行中的任务

    任务结束（成功或失败）时自动从 pending 表移除；
    调用方通过 asyncio.shield 等待，单个调用方被取消不会取消共享任务。
    """

    def __init__(self) -> None:
        self._pending: dict[K, asyncio.Task[V]] = {}

    def get(self, key: K) -> asyncio.Task[V] | None:
        return self._pending.get(key)

    def start(self, key: K, factory: Callable[[], Awaitable[V]]) -> asyncio.Task[V]:
        """返回进行中的任务；不存在时创建新任务"""
        task = self._pending.get(key)
        if task is not None:
            return task

        task = asyncio.ensure_future(factory())
        self._pending[key] = task
        task.add_done_callback(lambda done: self._discard(key, done))
        return task

    async def run(self, key: K, factory: Callable[[], Awaitable[V]]) -> V:
        return await asyncio.shield(self.start(key, factory))

    def tasks(self) -> list[asyncio.Task[V]]:
        return list(self._pending.values())

    def _discard(self, key: K, task: asyncio.Task[V]) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)


def _is_positive(value: float | None) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value) and value > 0
    except TypeError:
        return False
