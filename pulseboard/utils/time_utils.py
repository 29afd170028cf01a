from datetime import UTC, datetime


class Datetime:
    """
    统一的时间处理工具类
    核心原则：
    1. 系统内部（数据库、逻辑处理）统一使用 UTC 时区
    2. 所有 datetime 对象必须带有时区信息 (Timezone-aware)
    """

    @staticmethod
    def now() -> datetime:
        """
        获取当前 UTC 时间（带时区信息）
        替代 datetime.now() 或 datetime.utcnow()
        """
        return datetime.now(UTC)

    @staticmethod
    def ensure_aware(dt: datetime) -> datetime:
        """naive 时间视为 UTC（SQLite 读回的时间不带时区）"""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)

    @staticmethod
    def to_iso_string(dt: datetime) -> str:
        """转换为 ISO 8601 格式字符串 (e.g., 2023-01-01T12:00:00+00:00)"""
        return Datetime.ensure_aware(dt).isoformat()

    @staticmethod
    def from_iso_string(iso_string: str) -> datetime:
        """从 ISO 8601 字符串解析"""
        return Datetime.ensure_aware(datetime.fromisoformat(iso_string))

    @staticmethod
    def parse_iso_or_none(value: str | None) -> datetime | None:
        """解析失败返回 None，不抛异常"""
        if not value:
            return None
        try:
            return Datetime.from_iso_string(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def now_ms() -> int:
        """当前 Unix 毫秒时间戳"""
        return int(Datetime.now().timestamp() * 1000)
