"""
认证路由
会话由外部系统签发，这里只负责签发与会话绑定的 CSRF Token
"""

import secrets
import logging

from fastapi import APIRouter, Depends, Response

from core.csrf import get_csrf_validator
from core.config import get_settings
from core.guard import GUEST_SESSION_COOKIE, GuardContext, request_guard
from schemas import success

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/auth", tags=["认证"])


@router.get("/csrf-token")
async def get_csrf_token(
    response: Response,
    ctx: GuardContext = Depends(request_guard.protect("auth:csrf", auth="optional"))
):
    """
    获取 CSRF Token

    匿名访客没有会话时签发一个访客会话（写入 HttpOnly Cookie），
    之后的写请求需同时携带该 Cookie 与 X-CSRF-Token 头
    """
    session_id = ctx.identity.session_id
    if not session_id:
        session_id = secrets.token_urlsafe(24)
        response.set_cookie(
            GUEST_SESSION_COOKIE,
            session_id,
            max_age=get_settings().csrf_token_expire_seconds,
            httponly=True,
            samesite="strict"
        )
        logger.debug("已签发访客会话")

    token = await get_csrf_validator().issue(session_id)
    return success({"csrf_token": token})
