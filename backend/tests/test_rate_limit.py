"""
速率限制模块测试
"""
import time
import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from core.rate_limit import (
    RateLimiter, RateLimitPolicy, MemoryRateLimitStore, RedisRateLimitStore,
    ROUTE_POLICIES, DEFAULT_POLICY
)


class TestRateLimiterConfig:
    """速率限制器配置测试"""

    def setup_method(self):
        self.limiter = RateLimiter()

    def test_route_policies(self):
        """写操作比读操作更严格"""
        assert self.limiter.get_policy("posts:create").requests == 20
        assert self.limiter.get_policy("posts:list").requests == 100
        assert self.limiter.get_policy("posts:delete").requests == 10
        assert ROUTE_POLICIES["posts:detail"].window == 60

    def test_default_policy(self):
        assert self.limiter.get_policy("unknown:route") == DEFAULT_POLICY
        self.limiter.set_default_policy(5, window=30)
        assert self.limiter.get_policy("unknown:route") == RateLimitPolicy(5, 30)

    def test_configure_route(self):
        self.limiter.configure_route("posts:create", requests=3, window=10)
        assert self.limiter.get_policy("posts:create") == RateLimitPolicy(3, 10)

    def test_whitelist_blacklist(self):
        self.limiter.add_whitelist("1.2.3.4")
        self.limiter.add_blacklist("5.6.7.8")
        assert self.limiter.is_whitelisted("1.2.3.4")
        assert self.limiter.is_blacklisted("5.6.7.8")
        self.limiter.remove_blacklist("5.6.7.8")
        assert not self.limiter.is_blacklisted("5.6.7.8")

    def test_make_key(self):
        assert RateLimiter.make_key("user:7", "posts:create") == "ratelimit:posts:create:user:7"


@pytest.mark.asyncio
class TestFixedWindow:
    """固定窗口计数测试"""

    async def test_twenty_first_request_denied(self):
        """上限 20 时第 21 次请求被拒绝"""
        limiter = RateLimiter()
        results = [await limiter.check("user:1", "posts:create") for _ in range(21)]

        assert all(r.allowed for r in results[:20])
        assert results[19].remaining == 0
        assert results[20].allowed is False
        assert 0 < results[20].reset_after <= 60

    async def test_denied_requests_do_not_increment(self):
        limiter = RateLimiter()
        for _ in range(5):
            await limiter.check("ip:9.9.9.9", "x", max_requests=2, window_seconds=60)
        key = limiter.make_key("ip:9.9.9.9", "x")
        assert await limiter.store.get(key) == 2

    async def test_window_reset(self):
        """窗口结束后计数器重置"""
        limiter = RateLimiter()
        now = time.time()
        with patch("core.rate_limit.time.time", return_value=now):
            for _ in range(3):
                await limiter.check("user:1", "x", max_requests=3, window_seconds=60)
            assert (await limiter.check("user:1", "x", max_requests=3, window_seconds=60)).allowed is False

        with patch("core.rate_limit.time.time", return_value=now + 61):
            result = await limiter.check("user:1", "x", max_requests=3, window_seconds=60)
            assert result.allowed is True
            assert result.count == 1

    async def test_identities_and_routes_are_isolated(self):
        limiter = RateLimiter()
        assert (await limiter.check("user:1", "x", max_requests=1)).allowed
        assert not (await limiter.check("user:1", "x", max_requests=1)).allowed
        assert (await limiter.check("user:2", "x", max_requests=1)).allowed
        assert (await limiter.check("user:1", "y", max_requests=1)).allowed

    async def test_concurrent_requests_never_exceed_limit(self):
        """并发请求下放行数量恰好等于上限"""
        limiter = RateLimiter()
        results = await asyncio.gather(*[
            limiter.check("user:1", "posts:create") for _ in range(50)
        ])
        assert sum(1 for r in results if r.allowed) == 20


@pytest.mark.asyncio
class TestMemoryStore:

    async def test_clear_expired(self):
        store = MemoryRateLimitStore(grace_seconds=10)
        await store.increment("k", 5, 60)
        store._clear_expired(time.time() + 100)
        assert await store.get("k") == 0
        assert "k" not in store._clients

    async def test_reset(self):
        store = MemoryRateLimitStore()
        await store.increment("k", 5, 60)
        await store.reset("k")
        assert await store.get("k") == 0


@pytest.mark.asyncio
class TestRedisStore:
    """Redis 存储通过 Lua 脚本原子计数"""

    async def test_increment_uses_script(self):
        client = MagicMock()
        script = AsyncMock(return_value=[1, 3, 45000])
        client.register_script.return_value = script

        store = RedisRateLimitStore(client)
        result = await store.increment("ratelimit:x:user:1", 20, 60)

        script.assert_awaited_once_with(keys=["ratelimit:x:user:1"], args=[20, 60000])
        assert result.allowed is True
        assert result.count == 3
        assert result.reset_after == 45.0

    async def test_denied_result(self):
        client = MagicMock()
        client.register_script.return_value = AsyncMock(return_value=[0, 20, 1500])

        result = await RedisRateLimitStore(client).increment("k", 20, 60)
        assert result.allowed is False
        assert result.reset_after == 1.5
