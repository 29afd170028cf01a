from __future__ import annotations

from pydantic import Field

from .base import BaseSchema
from .health import AvailabilityPeriod, AvailabilityStat, ProviderTimeline


class GroupInfoSummary(BaseSchema):
    group_name: str = Field(..., alias="groupName")
    website_url: str | None = Field(None, alias="websiteUrl")
    tags: str = ""


class DashboardData(BaseSchema):
    provider_timelines: list[ProviderTimeline] = Field(..., alias="providerTimelines")
    group_infos: list[GroupInfoSummary] = Field(default_factory=list, alias="groupInfos")
    last_updated: str | None = Field(None, alias="lastUpdated")
    total: int
    poll_interval_label: str = Field(..., alias="pollIntervalLabel")
    poll_interval_ms: int = Field(..., alias="pollIntervalMs")
    availability_stats: dict[str, list[AvailabilityStat]] = Field(default_factory=dict, alias="availabilityStats")
    trend_period: AvailabilityPeriod = Field(..., alias="trendPeriod")
    generated_at: int = Field(..., alias="generatedAt")


class GroupDashboardData(BaseSchema):
    group_name: str = Field(..., alias="groupName")
    display_name: str = Field(..., alias="displayName")
    tags: str = ""
    website_url: str | None = Field(None, alias="websiteUrl")
    provider_timelines: list[ProviderTimeline] = Field(..., alias="providerTimelines")
    last_updated: str | None = Field(None, alias="lastUpdated")
    total: int
    poll_interval_label: str = Field(..., alias="pollIntervalLabel")
    poll_interval_ms: int = Field(..., alias="pollIntervalMs")
    availability_stats: dict[str, list[AvailabilityStat]] = Field(default_factory=dict, alias="availabilityStats")
    trend_period: AvailabilityPeriod = Field(..., alias="trendPeriod")
    generated_at: int = Field(..., alias="generatedAt")


class CacheMetricsResponse(BaseSchema):
    hits: int = 0
    misses: int = 0
    inflight_hits: int = Field(0, alias="inflightHits")


class CombinedCacheMetrics(BaseSchema):
    hits: int = 0
    misses: int = 0


class InternalCacheMetricsResponse(BaseSchema):
    availability_cache: CacheMetricsResponse = Field(..., alias="availabilityCache")
    config_cache: CacheMetricsResponse = Field(..., alias="configCache")
    group_info_cache: CacheMetricsResponse = Field(..., alias="groupInfoCache")
    dashboard_cache: CacheMetricsResponse = Field(..., alias="dashboardCache")
    group_dashboard_cache: CacheMetricsResponse = Field(..., alias="groupDashboardCache")
    combined_db_cache: CombinedCacheMetrics = Field(..., alias="combinedDbCache")
    generated_at: str = Field(..., alias="generatedAt")
