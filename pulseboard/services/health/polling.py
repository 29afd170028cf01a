"""轮询间隔配置（秒），对外展示时换算为毫秒与中文标签"""

from pulseboard.core.config import settings

MIN_POLL_INTERVAL_SECONDS = 15
MAX_POLL_INTERVAL_SECONDS = 600


def poll_interval_seconds() -> int:
    raw = settings.CHECK_POLL_INTERVAL_SECONDS
    return max(MIN_POLL_INTERVAL_SECONDS, min(MAX_POLL_INTERVAL_SECONDS, raw))


def poll_interval_ms() -> int:
    return poll_interval_seconds() * 1000


def poll_interval_label(seconds: int | None = None) -> str:
    value = poll_interval_seconds() if seconds is None else seconds
    if value % 60 == 0 and value >= 60:
        return f"{value // 60} 分钟"
    return f"{value} 秒"
