"""
缓存核心模块单元测试
覆盖：基本操作、模式清除、连接失败降级、关闭、便捷函数
"""

import json
import pytest
from unittest.mock import patch, MagicMock, AsyncMock

from core.cache import (
    Cache, get_cache, set_cache, delete_cache,
    init_cache, close_cache, get_redis_client,
)


@pytest.mark.asyncio
class TestCacheOperations:
    """缓存基本操作测试"""

    async def test_set_get(self):
        mock_redis = AsyncMock()
        mock_redis.get.return_value = json.dumps({"key": "value"})

        with patch("core.cache._redis_client", mock_redis):
            assert await Cache.get("k") == {"key": "value"}
            mock_redis.get.assert_called_with("k")

            assert await Cache.set("k2", {"a": 1}, expire=60) is True
            mock_redis.setex.assert_called_with("k2", 60, '{"a": 1}')

    async def test_plain_string_value(self):
        mock_redis = AsyncMock()
        mock_redis.get.return_value = "not-json"
        with patch("core.cache._redis_client", mock_redis):
            assert await Cache.get("k") == "not-json"

    async def test_set_without_expire(self):
        mock_redis = AsyncMock()
        with patch("core.cache._redis_client", mock_redis):
            await Cache.set("k", "v")
            mock_redis.set.assert_called_with("k", "v")

    async def test_delete(self):
        mock_redis = AsyncMock()
        with patch("core.cache._redis_client", mock_redis):
            assert await Cache.delete("k") is True
            mock_redis.delete.assert_called_with("k")

    async def test_clear_pattern(self):
        async def scan_iter(match=None):
            for key in ("csrf:a", "csrf:b"):
                yield key

        mock_redis = AsyncMock()
        mock_redis.scan_iter = scan_iter
        with patch("core.cache._redis_client", mock_redis):
            assert await Cache.clear_pattern("csrf:*") == 2
        assert mock_redis.delete.await_count == 2

    async def test_redis_error_degrades(self):
        """Redis 异常时返回默认值"""
        mock_redis = AsyncMock()
        mock_redis.get.side_effect = ConnectionError("down")
        mock_redis.setex.side_effect = ConnectionError("down")

        with patch("core.cache._redis_client", mock_redis):
            assert await Cache.get("k", default="d") == "d"
            assert await Cache.set("k", "v", expire=1) is False

    async def test_no_client(self):
        with patch("core.cache._redis_client", None):
            assert await get_cache("k", "default") == "default"
            assert await set_cache("k", "v") is False
            assert await delete_cache("k") is False
            assert await Cache.clear_pattern("*") == 0


@pytest.mark.asyncio
class TestCacheLifecycle:
    """连接初始化与关闭测试"""

    async def test_disabled_by_config(self):
        settings = MagicMock(redis_enabled=False)
        with patch("core.cache.get_settings", return_value=settings):
            assert await init_cache() is False
        assert get_redis_client() is None

    async def test_connection_failure(self):
        settings = MagicMock(redis_enabled=True, redis_host="localhost", redis_port=6379,
                             redis_db=0, redis_password=None)
        client = AsyncMock()
        client.ping.side_effect = ConnectionError("refused")

        with patch("core.cache.get_settings", return_value=settings), \
             patch("core.cache.redis.Redis", return_value=client):
            assert await init_cache() is False
        assert get_redis_client() is None

    async def test_connect_and_close(self):
        settings = MagicMock(redis_enabled=True, redis_host="localhost", redis_port=6379,
                             redis_db=0, redis_password=None)
        client = AsyncMock()

        with patch("core.cache.get_settings", return_value=settings), \
             patch("core.cache.redis.Redis", return_value=client):
            assert await init_cache() is True
            assert get_redis_client() is client

        await close_cache()
        client.aclose.assert_awaited_once()
        assert get_redis_client() is None
