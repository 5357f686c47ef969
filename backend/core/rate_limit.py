"""
速率限制模块
按 (调用方身份, 路由类别) 维度计数，防止API滥用

- 固定窗口：窗口结束后计数器重置（而非递减）
- 计数与比较在存储层原子完成，同一窗口内计数不会超过上限
- 存储可替换：内存（单进程）或 Redis（多实例共享）
"""

import time
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Iterable
from dataclasses import dataclass

from core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """速率限制策略"""
    requests: int            # 窗口内允许的请求数
    window: int = 60         # 时间窗口（秒）


# 路由类别策略：写操作与删除操作更严格
ROUTE_POLICIES: Dict[str, RateLimitPolicy] = {
    "posts:list": RateLimitPolicy(100),
    "posts:detail": RateLimitPolicy(200),
    "posts:create": RateLimitPolicy(20),
    "posts:update": RateLimitPolicy(20),
    "posts:delete": RateLimitPolicy(10),
    "categories:list": RateLimitPolicy(100),
    "categories:write": RateLimitPolicy(20),
    "tags:list": RateLimitPolicy(100),
    "tags:write": RateLimitPolicy(20),
    "comments:list": RateLimitPolicy(100),
    "comments:create": RateLimitPolicy(10),
    "comments:moderate": RateLimitPolicy(20),
    "auth:csrf": RateLimitPolicy(30),
}

DEFAULT_POLICY = RateLimitPolicy(60)


@dataclass
class RateLimitResult:
    """单次计数结果"""
    allowed: bool
    count: int
    limit: int
    reset_after: float  # 距离窗口重置的秒数

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


# ==================== 计数存储 ====================

class RateLimitStore(ABC):
    """
    计数存储能力接口
    increment 必须原子地完成「比较 + 递增」，并在首次计数时设置过期时间
    """

    @abstractmethod
    async def get(self, key: str) -> int:
        """读取当前窗口计数"""

    @abstractmethod
    async def increment(self, key: str, limit: int, window: int) -> RateLimitResult:
        """计数未达上限时递增并放行，否则拒绝且不递增"""

    async def reset(self, key: str):
        """清除计数（管理用途）"""


@dataclass
class ClientState:
    """内存计数器状态"""
    requests: int = 0
    window_start: float = 0
    window: int = 60


class MemoryRateLimitStore(RateLimitStore):
    """
    内存计数存储
    同一事件循环内通过 asyncio.Lock 保证比较与递增的原子性
    """

    CLEANUP_INTERVAL = 1000  # 每处理多少次计数尝试清理一次

    def __init__(self, grace_seconds: int = 60):
        self._clients: Dict[str, ClientState] = {}
        self._lock = asyncio.Lock()
        self._grace_seconds = grace_seconds
        self._request_count = 0

    async def get(self, key: str) -> int:
        state = self._clients.get(key)
        if not state or time.time() - state.window_start >= state.window:
            return 0
        return state.requests

    async def increment(self, key: str, limit: int, window: int) -> RateLimitResult:
        async with self._lock:
            current_time = time.time()
            self._request_count += 1
            if self._request_count >= self.CLEANUP_INTERVAL:
                self._request_count = 0
                self._clear_expired(current_time)

            state = self._clients.get(key)
            if state is None:
                state = ClientState(window_start=current_time, window=window)
                self._clients[key] = state

            # 窗口结束，计数器重置
            if current_time - state.window_start >= state.window:
                state.requests = 0
                state.window_start = current_time
                state.window = window

            reset_after = state.window_start + state.window - current_time

            if state.requests >= limit:
                return RateLimitResult(False, state.requests, limit, reset_after)

            state.requests += 1
            return RateLimitResult(True, state.requests, limit, reset_after)

    async def reset(self, key: str):
        async with self._lock:
            self._clients.pop(key, None)

    def _clear_expired(self, current_time: float):
        """清理过期记录（窗口结束 + 宽限期）"""
        expired = [
            key for key, state in self._clients.items()
            if current_time - state.window_start > state.window + self._grace_seconds
        ]
        for key in expired:
            del self._clients[key]

        if expired:
            logger.debug(f"清理 {len(expired)} 个过期速率限制记录")


# 比较、递增、设置过期在 Redis 端一次完成
_FIXED_WINDOW_LUA = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
local limit = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
if current >= limit then
  local ttl = redis.call('PTTL', KEYS[1])
  return {0, current, ttl}
end
current = redis.call('INCR', KEYS[1])
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
  redis.call('PEXPIRE', KEYS[1], window_ms)
  ttl = window_ms
end
return {1, current, ttl}
"""


class RedisRateLimitStore(RateLimitStore):
    """Redis 计数存储（Lua 脚本保证原子性，过期由 Redis 负责淘汰）"""

    def __init__(self, client):
        self._client = client
        self._script = client.register_script(_FIXED_WINDOW_LUA)

    async def get(self, key: str) -> int:
        value = await self._client.get(key)
        return int(value) if value else 0

    async def increment(self, key: str, limit: int, window: int) -> RateLimitResult:
        allowed, count, ttl_ms = await self._script(keys=[key], args=[limit, window * 1000])
        reset_after = max(0, int(ttl_ms)) / 1000
        return RateLimitResult(bool(int(allowed)), int(count), limit, reset_after)

    async def reset(self, key: str):
        await self._client.delete(key)


# ==================== 限制器 ====================

class RateLimiter:
    """
    速率限制器

    check(identity, route_class, max_requests, window_seconds) -> RateLimitResult
    """

    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        policies: Optional[Dict[str, RateLimitPolicy]] = None,
        default_policy: RateLimitPolicy = DEFAULT_POLICY
    ):
        self.store = store or MemoryRateLimitStore()
        self._policies: Dict[str, RateLimitPolicy] = dict(policies or ROUTE_POLICIES)
        self._default_policy = default_policy
        # 白名单IP（不计数）
        self._whitelist: set = set()
        # 黑名单IP（直接拒绝）
        self._blacklist: set = set()

    def use_store(self, store: RateLimitStore):
        """替换计数存储"""
        self.store = store

    def configure_route(self, route_class: str, requests: int, window: int = 60):
        """配置特定路由类别的速率限制"""
        self._policies[route_class] = RateLimitPolicy(requests=requests, window=window)

    def set_default_policy(self, requests: int, window: int = 60):
        """配置未登记路由类别的默认策略"""
        self._default_policy = RateLimitPolicy(requests=requests, window=window)

    def get_policy(self, route_class: str) -> RateLimitPolicy:
        """获取路由类别策略"""
        return self._policies.get(route_class, self._default_policy)

    def add_whitelist(self, ip: str):
        """添加白名单IP"""
        self._whitelist.add(ip)

    def add_blacklist(self, ip: str):
        """添加黑名单IP"""
        self._blacklist.add(ip)

    def remove_blacklist(self, ip: str):
        """移除黑名单IP"""
        self._blacklist.discard(ip)

    def is_whitelisted(self, ip: str) -> bool:
        return ip in self._whitelist

    def is_blacklisted(self, ip: str) -> bool:
        return ip in self._blacklist

    @staticmethod
    def make_key(identity: str, route_class: str) -> str:
        return f"ratelimit:{route_class}:{identity}"

    async def check(
        self,
        identity: str,
        route_class: str,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None
    ) -> RateLimitResult:
        """
        检查并计数一次请求

        Args:
            identity: 调用方身份键（user:<id> 或 ip:<addr>）
            route_class: 路由类别，如 posts:create
            max_requests: 覆盖策略中的请求上限
            window_seconds: 覆盖策略中的窗口长度
        """
        policy = self.get_policy(route_class)
        limit = max_requests if max_requests is not None else policy.requests
        window = window_seconds if window_seconds is not None else policy.window

        result = await self.store.increment(self.make_key(identity, route_class), limit, window)
        if not result.allowed:
            logger.warning(f"请求超限: {identity} | {route_class} | 上限 {limit}/{window}s")
        return result


# 全局限制器实例（默认内存存储，init_rate_limiter 会在 Redis 可用时切换）
rate_limiter = RateLimiter()


def init_rate_limiter(redis_client=None, extra_blacklist: Optional[Iterable[str]] = None) -> RateLimiter:
    """初始化速率限制器"""
    settings = get_settings()

    if redis_client is not None:
        rate_limiter.use_store(RedisRateLimitStore(redis_client))
        logger.info("速率限制使用 Redis 存储")
    else:
        rate_limiter.use_store(MemoryRateLimitStore(grace_seconds=settings.rate_limit_grace_seconds))
        logger.info("速率限制使用内存存储")

    rate_limiter.set_default_policy(DEFAULT_POLICY.requests, settings.rate_limit_window)

    # 如果启用，将本地IP加入白名单（开发环境推荐）
    if settings.rate_limit_whitelist_localhost:
        rate_limiter.add_whitelist("127.0.0.1")
        rate_limiter.add_whitelist("::1")  # IPv6 localhost
        logger.debug("本地IP已加入速率限制白名单")

    for ip in list(settings.rate_limit_blacklist) + list(extra_blacklist or []):
        rate_limiter.add_blacklist(ip)

    return rate_limiter


def get_rate_limiter() -> RateLimiter:
    """获取速率限制器实例"""
    return rate_limiter
