from .base import Base
from .check_config import CheckConfig
from .check_history import CheckHistory
from .group_info import GroupInfo

__all__ = [
    "Base",
    "CheckConfig",
    "CheckHistory",
    "GroupInfo",
]
