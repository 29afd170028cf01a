from __future__ import annotations

from enum import Enum

from pydantic import Field

from .base import BaseSchema


class ProviderType(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


DEFAULT_ENDPOINTS: dict[ProviderType, str] = {
    ProviderType.OPENAI: "https://api.openai.com/v1/chat/completions",
    ProviderType.ANTHROPIC: "https://api.anthropic.com/v1/messages",
    ProviderType.GEMINI: "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
}


class HealthStatus(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    VALIDATION_FAILED = "validation_failed"
    FAILED = "failed"
    ERROR = "error"
    MAINTENANCE = "maintenance"


class RefreshMode(str, Enum):
    NEVER = "never"  # 只读历史
    MISSING = "missing"  # 历史为空时才探测
    ALWAYS = "always"  # 强制探测


class AvailabilityPeriod(str, Enum):
    D7 = "7d"
    D15 = "15d"
    D30 = "30d"


DEFAULT_TREND_PERIOD = AvailabilityPeriod.D7

UNGROUPED_KEY = "__ungrouped__"
UNGROUPED_DISPLAY_NAME = "未分组"


class ProviderConfig(BaseSchema):
    """单个被监控端点（每个请求周期内不可变）"""

    id: str
    name: str
    type: ProviderType
    model: str
    endpoint: str
    group_name: str | None = Field(None, alias="groupName")
    is_maintenance: bool = Field(False, alias="isMaintenance")
    api_key: str | None = Field(None, alias="apiKey", exclude=True, repr=False)
    # 维护占位时间线使用配置更新时间作为 checked_at，保证同一数据的 ETag 稳定
    updated_at: str | None = Field(None, alias="updatedAt", exclude=True)


class OfficialStatus(BaseSchema):
    status: str
    message: str = ""
    checked_at: str = Field(..., alias="checkedAt")


class CheckResult(BaseSchema):
    """一次探测结果，只追加不修改"""

    id: str
    name: str
    type: ProviderType
    endpoint: str
    model: str
    status: HealthStatus
    latency_ms: int | None = Field(None, alias="latencyMs")
    ping_latency_ms: int | None = Field(None, alias="pingLatencyMs")
    checked_at: str = Field(..., alias="checkedAt")
    message: str = ""
    group_name: str | None = Field(None, alias="groupName")
    # 读取时附加，不落库
    official_status: OfficialStatus | None = Field(None, alias="officialStatus")


HistorySnapshot = dict[str, list[CheckResult]]


class ProviderTimeline(BaseSchema):
    id: str
    items: list[CheckResult]
    latest: CheckResult


class AvailabilityStat(BaseSchema):
    period: AvailabilityPeriod
    total_checks: int = Field(0, alias="totalChecks")
    operational_count: int = Field(0, alias="operationalCount")
    availability_pct: float | None = Field(None, alias="availabilityPct")


AvailabilityStatsMap = dict[str, list[AvailabilityStat]]
