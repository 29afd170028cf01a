from .swr_cache import (
    FetchWithCacheResult,
    FrontendCacheMetrics,
    FrontendFetchError,
    NoDataAvailableError,
    SWRResourceCache,
    dashboard_cache,
    group_cache,
)

__all__ = [
    "FetchWithCacheResult",
    "FrontendCacheMetrics",
    "FrontendFetchError",
    "NoDataAvailableError",
    "SWRResourceCache",
    "dashboard_cache",
    "group_cache",
]
