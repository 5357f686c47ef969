"""
CSRF 防护模块
提供与会话绑定的 CSRF Token 生成和验证功能

- Token 只对签发它的会话有效，且仅在有效期内有效
- 有效期内允许重复使用（兼顾 SPA 体验）
- 会话结束时统一销毁
"""

import hmac
import time
import hashlib
import logging
import secrets
from typing import Dict, Optional

from fastapi import Request

from core.cache import Cache, get_redis_client
from core.config import get_settings

logger = logging.getLogger(__name__)

# 需要 CSRF 验证的 HTTP 方法
PROTECTED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def _token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _cache_key(session_id: str, token: str) -> str:
    return f"csrf:{session_id}:{_token_digest(token)}"


class CsrfValidator:
    """
    CSRF Token 签发与校验

    优先存入 Redis，Redis 不可用时回退到内存
    """

    def __init__(self, expire_seconds: Optional[int] = None, max_memory_tokens: Optional[int] = None):
        settings = get_settings()
        self.expire_seconds = expire_seconds or settings.csrf_token_expire_seconds
        self.max_memory_tokens = max_memory_tokens or settings.csrf_max_memory_tokens
        self._tokens: Dict[str, dict] = {}

    async def issue(self, session_id: str) -> str:
        """
        为会话生成 CSRF Token

        Returns:
            CSRF Token 字符串
        """
        token = secrets.token_urlsafe(32)
        token_data = {
            "session_id": session_id,
            "created_at": time.time()
        }
        key = _cache_key(session_id, token)

        saved = False
        if get_redis_client() is not None:
            saved = await Cache.set(key, token_data, self.expire_seconds)

        if not saved:
            self._tokens[key] = token_data
            self._cleanup_expired_tokens()

        return token

    async def validate(self, request_token: Optional[str], session_id: Optional[str]) -> bool:
        """
        校验 Token：缺失、不属于当前会话或已过期均视为无效
        （只读校验，不消耗 Token）
        """
        if not request_token or not session_id:
            return False

        key = _cache_key(session_id, request_token)

        token_info = None
        if get_redis_client() is not None:
            token_info = await Cache.get(key)
        if token_info is None:
            token_info = self._tokens.get(key)

        # 必须是 dict 且包含 created_at，否则视为无效
        if not isinstance(token_info, dict) or "created_at" not in token_info:
            return False

        if not hmac.compare_digest(str(token_info.get("session_id", "")), session_id):
            return False

        if time.time() - token_info["created_at"] > self.expire_seconds:
            self._tokens.pop(key, None)
            return False

        return True

    async def revoke_session(self, session_id: str) -> int:
        """销毁会话的全部 Token（会话结束时调用）"""
        prefix = f"csrf:{session_id}:"
        local_keys = [key for key in self._tokens if key.startswith(prefix)]
        for key in local_keys:
            del self._tokens[key]

        removed = len(local_keys)
        if get_redis_client() is not None:
            removed += await Cache.clear_pattern(f"{prefix}*")
        return removed

    def _cleanup_expired_tokens(self):
        """清理过期的内存 Token，并限制最大数量防止 DoS"""
        current_time = time.time()
        expired = [
            key for key, info in self._tokens.items()
            if current_time - info["created_at"] > self.expire_seconds
        ]
        for key in expired:
            del self._tokens[key]

        # 超过上限时，移除最早创建的 Token
        if len(self._tokens) > self.max_memory_tokens:
            sorted_tokens = sorted(self._tokens.items(), key=lambda x: x[1]["created_at"])
            to_remove = len(self._tokens) - self.max_memory_tokens
            for key, _ in sorted_tokens[:to_remove]:
                del self._tokens[key]


def get_csrf_token_from_request(request: Request) -> Optional[str]:
    """
    从请求中获取 CSRF Token

    支持从以下位置获取：
    1. Header: X-CSRF-Token
    2. Query Parameter: csrf_token
    """
    token = request.headers.get("X-CSRF-Token")
    if token:
        return token

    token = request.query_params.get("csrf_token")
    if token:
        return token

    return None


def requires_csrf(method: str) -> bool:
    """只有状态变更操作需要校验；读操作没有可伪造的副作用"""
    return method.upper() in PROTECTED_METHODS


csrf_validator = CsrfValidator()


def get_csrf_validator() -> CsrfValidator:
    """获取 CSRF 校验器实例"""
    return csrf_validator
