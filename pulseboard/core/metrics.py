"""
Prometheus 指标与进程内缓存计数

- 缓存命中/未命中/复用进行中请求的计数同时写入 Prometheus 与可重置的进程内计数器
- 进程内计数器供 /api/internal/cache-metrics 使用
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

# 注册表便于单元测试重置
registry = CollectorRegistry()

CACHE_EVENTS = Counter(
    "pulseboard_cache_events_total",
    "进程内缓存事件计数",
    ["cache", "event"],
    registry=registry,
)
PROBE_LATENCY = Histogram(
    "pulseboard_probe_latency_seconds",
    "Provider 探测耗时",
    ["provider", "status"],
    registry=registry,
)
PROBE_BATCHES = Counter(
    "pulseboard_probe_batches_total",
    "探测批次计数",
    registry=registry,
)


@dataclass
class CacheMetricsSnapshot:
    hits: int = 0
    misses: int = 0
    inflight_hits: int = 0


class CacheMetrics:
    """单个缓存实例的计数器"""

    def __init__(self, name: str):
        self.name = name
        self._counts = CacheMetricsSnapshot()

    def record_hit(self) -> None:
        self._counts.hits += 1
        CACHE_EVENTS.labels(cache=self.name, event="hit").inc()

    def record_miss(self) -> None:
        self._counts.misses += 1
        CACHE_EVENTS.labels(cache=self.name, event="miss").inc()

    def record_inflight_hit(self) -> None:
        self._counts.inflight_hits += 1
        CACHE_EVENTS.labels(cache=self.name, event="inflight_hit").inc()

    def snapshot(self) -> CacheMetricsSnapshot:
        return CacheMetricsSnapshot(**asdict(self._counts))

    def reset(self) -> None:
        self._counts = CacheMetricsSnapshot()


def record_probe(provider: str, status: str, latency_ms: int | None) -> None:
    if latency_ms is not None:
        PROBE_LATENCY.labels(provider=provider, status=status).observe(latency_ms / 1000.0)


def record_probe_batch() -> None:
    PROBE_BATCHES.inc()


def metrics_content() -> bytes:
    """导出 Prometheus 指标"""
    return generate_latest(registry)
