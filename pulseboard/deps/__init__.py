from .health import (
    HealthRuntime,
    build_health_runtime,
    get_dashboard_service,
    get_group_service,
    get_health_runtime,
)

__all__ = [
    "HealthRuntime",
    "build_health_runtime",
    "get_dashboard_service",
    "get_group_service",
    "get_health_runtime",
]
