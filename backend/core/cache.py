"""
Redis 共享存储
CSRF Token 与速率限制计数器共享同一连接；Redis 不可用时各自退回内存存储
"""

import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union
from datetime import timedelta

import redis.asyncio as redis
from redis.exceptions import RedisError

from core.config import get_settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None

T = TypeVar("T")


async def init_cache() -> bool:
    """连接 Redis，失败时保持未连接状态"""
    global _redis_client
    settings = get_settings()

    if not settings.redis_enabled:
        logger.info("Redis 已在配置中禁用，使用内存存储")
        return False

    client = redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        password=settings.redis_password,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis 连接失败，使用内存存储: {e}")
        _redis_client = None
        return False

    _redis_client = client
    logger.info(f"Redis 连接成功: {settings.redis_host}:{settings.redis_port}")
    return True


async def close_cache():
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis 连接已关闭")


def get_redis_client() -> Optional[redis.Redis]:
    """当前 Redis 客户端（未连接时为 None）"""
    return _redis_client


def _dump(value: Any) -> str:
    if isinstance(value, (str, int, float, bool)):
        return str(value)
    return json.dumps(value, ensure_ascii=False)


def _load(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw


async def _run(action: str, key: str, op: Callable[[redis.Redis], Awaitable[T]], fallback: T) -> T:
    """
    执行一次 Redis 操作

    未连接或操作失败时返回 fallback，调用方据此退回内存存储
    """
    if not _redis_client:
        return fallback
    try:
        return await op(_redis_client)
    except (RedisError, OSError) as e:
        logger.error(f"{action}失败 {key}: {e}")
        return fallback


class Cache:
    """JSON 键值操作（值自动序列化）"""

    @staticmethod
    async def get(key: str, default: Any = None) -> Any:
        raw = await _run("读取缓存", key, lambda r: r.get(key), None)
        return default if raw is None else _load(raw)

    @staticmethod
    async def set(key: str, value: Any, expire: Optional[Union[int, timedelta]] = None) -> bool:
        """写入缓存，expire 为秒数或 timedelta"""
        payload = _dump(value)

        async def op(r: redis.Redis) -> bool:
            if expire is None:
                await r.set(key, payload)
            else:
                seconds = int(expire.total_seconds()) if isinstance(expire, timedelta) else expire
                await r.setex(key, seconds, payload)
            return True

        return await _run("写入缓存", key, op, False)

    @staticmethod
    async def delete(key: str) -> bool:
        async def op(r: redis.Redis) -> bool:
            await r.delete(key)
            return True

        return await _run("删除缓存", key, op, False)

    @staticmethod
    async def clear_pattern(pattern: str) -> int:
        """按通配符删除键，返回删除数量"""
        async def op(r: redis.Redis) -> int:
            count = 0
            async for key in r.scan_iter(match=pattern):
                await r.delete(key)
                count += 1
            return count

        return await _run("按模式删除缓存", pattern, op, 0)


async def get_cache(key: str, default: Any = None) -> Any:
    return await Cache.get(key, default)


async def set_cache(key: str, value: Any, expire: Optional[int] = None) -> bool:
    return await Cache.set(key, value, expire)


async def delete_cache(key: str) -> bool:
    return await Cache.delete(key)
