"""
会话令牌模块
提供JWT会话令牌的签发与解码

注意：令牌中的 role 字段仅作为客户端声明，授权判断必须以数据库中的角色为准
（见 core.authz）
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from pydantic import BaseModel, Field

from .config import get_settings


class TokenData(BaseModel):
    """令牌数据"""
    user_id: int
    username: str = ""
    role: str = "user"  # 不可信的角色声明
    sid: str = Field(default_factory=lambda: uuid.uuid4().hex)  # 会话ID，CSRF Token 与之绑定


def create_token(data: TokenData, expires_delta: Optional[timedelta] = None) -> str:
    """
    创建JWT令牌

    Args:
        data: 令牌数据
        expires_delta: 过期时间增量
    """
    settings = get_settings()
    to_encode = data.model_dump()

    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_expire_minutes)
    to_encode.update({
        "exp": datetime.now(timezone.utc) + expires_delta,
        "type": "access"
    })

    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[TokenData]:
    """
    解码JWT令牌
    支持密钥轮换：先尝试新密钥，失败则尝试旧密钥
    """
    settings = get_settings()

    def _decode(secret: str) -> TokenData:
        payload = jwt.decode(token, secret, algorithms=[settings.jwt_algorithm])
        if payload.get("type", "access") != "access":
            raise JWTError("token type mismatch")
        return TokenData(**payload)

    try:
        return _decode(settings.jwt_secret)
    except (JWTError, ValueError):
        if settings.jwt_secret_old:
            try:
                return _decode(settings.jwt_secret_old)
            except (JWTError, ValueError):
                return None
        return None


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """从 Authorization 头中提取 Bearer 令牌"""
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()
