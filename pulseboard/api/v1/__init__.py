"""
v1 路由聚合
"""

from pulseboard.api.v1.dashboard_route import router as dashboard_router
from pulseboard.api.v1.group_route import router as group_router
from pulseboard.api.v1.internal_route import router as internal_router

__all__ = [
    "dashboard_router",
    "group_router",
    "internal_router",
]
