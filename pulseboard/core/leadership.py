"""
轮询主节点选举（基于 Redis 租约）

多实例部署时只允许一个实例主动探测 Provider，避免重复写历史与放大上游请求量。
租约在 TTL 内未续期即过期，其他实例可接管；交接瞬间的短暂重叠是可接受的。
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Protocol

from pulseboard.core.config import settings
from pulseboard.core.redis import RedisService, redis_service

logger = logging.getLogger(__name__)

# 仅当租约仍归属本实例时续期
_RENEW_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""

# 仅当租约仍归属本实例时释放
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class LeadershipError(Exception):
    """选举存储不可达"""

    pass


class LeadershipCoordinator(Protocol):
    async def ensure_leadership(self) -> None: ...

    def is_leader(self) -> bool: ...


class RedisLeaderElection:
    """
    获取 / 续期 / 确认一个具名租约

    - ensure_leadership() 距上次成功确认不足 renew_interval 时直接复用结果
    - 未配置 Redis 时进入单实例模式，始终为主节点
    - Redis 调用异常时标记为从节点并抛出 LeadershipError
    """

    def __init__(
        self,
        lease_key: str | None = None,
        ttl: int | None = None,
        renew_interval: float | None = None,
        owner_id: str | None = None,
        redis: RedisService = redis_service,
        clock=time.monotonic,
    ):
        self.lease_key = lease_key or settings.LEADER_LEASE_KEY
        self.ttl = ttl or settings.LEADER_LEASE_TTL_SECONDS
        self.renew_interval = (
            renew_interval if renew_interval is not None else settings.LEADER_RENEW_INTERVAL_SECONDS
        )
        self.owner_id = owner_id or str(uuid.uuid4())
        self._redis = redis
        self._clock = clock
        self._leader = False
        self._checked_at: float | None = None
        self._standalone_logged = False

    def is_leader(self) -> bool:
        return self._leader

    async def ensure_leadership(self) -> None:
        if not self._redis.available:
            if not self._standalone_logged:
                logger.warning("leader_election_standalone key=%s owner=%s", self.lease_key, self.owner_id)
                self._standalone_logged = True
            self._leader = True
            return

        now = self._clock()
        if self._checked_at is not None and now - self._checked_at < self.renew_interval:
            return

        client = self._redis.redis
        full_key = self._redis.make_key(self.lease_key)
        ttl_ms = int(self.ttl * 1000)
        try:
            acquired = await client.set(full_key, self.owner_id, px=ttl_ms, nx=True)
            if acquired:
                leader = True
            else:
                renewed = await client.eval(_RENEW_SCRIPT, 1, full_key, self.owner_id, ttl_ms)
                leader = bool(renewed)
        except Exception as exc:
            self._leader = False
            self._checked_at = None
            logger.warning("leader_election_error key=%s err=%s", self.lease_key, exc)
            raise LeadershipError(f"Leader election unavailable: {self.lease_key}") from exc

        if leader != self._leader:
            logger.info(
                "leader_election_changed key=%s owner=%s leader=%s",
                self.lease_key,
                self.owner_id,
                leader,
            )
        self._leader = leader
        self._checked_at = now

    async def release(self) -> bool:
        """关闭时主动释放租约，便于其他实例立即接管"""
        was_leader = self._leader
        self._leader = False
        self._checked_at = None
        if not was_leader or not self._redis.available:
            return False

        try:
            full_key = self._redis.make_key(self.lease_key)
            result = await self._redis.redis.eval(_RELEASE_SCRIPT, 1, full_key, self.owner_id)
            released = bool(result)
            if released:
                logger.info("leader_election_released key=%s owner=%s", self.lease_key, self.owner_id)
            return released
        except Exception as exc:
            logger.error("leader_election_release_error key=%s err=%s", self.lease_key, exc)
            return False
