from redis.asyncio import Redis, from_url

from pulseboard.core.config import settings
from pulseboard.core.logging import logger


class RedisService:
    """
    Redis 连接管理

    仅用于跨实例协调（主节点租约），快照与响应缓存均为进程内缓存。
    """
    def __init__(self):
        self._redis: Redis | None = None

    def init(self) -> None:
        """初始化 Redis 连接池"""
        if settings.REDIS_URL:
            self._redis = from_url(
                settings.REDIS_URL,
                encoding=settings.REDIS_ENCODING,
                decode_responses=True,
            )
            logger.info(f"Redis initialized at {settings.REDIS_URL}")
        else:
            logger.warning("REDIS_URL not set, leader election runs in standalone mode")

    async def close(self) -> None:
        """关闭 Redis 连接"""
        if self._redis:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed")

    @property
    def available(self) -> bool:
        return self._redis is not None

    @property
    def redis(self) -> Redis:
        if not self._redis:
            raise RuntimeError("RedisService not initialized. Call init() first.")
        return self._redis

    def attach(self, client: Redis | None) -> None:
        """直接挂载客户端（测试注入内存替身）"""
        self._redis = client

    def make_key(self, key: str) -> str:
        return f"{settings.CACHE_PREFIX}{key}"


# 单例实例
redis_service = RedisService()
