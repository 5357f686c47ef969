"""
请求守卫
在业务逻辑执行之前依次完成：速率限制 -> CSRF 校验 -> 输入净化 -> 授权复核

用法：
    from core.guard import request_guard

    @router.post("/posts")
    async def create_post(ctx: GuardContext = Depends(request_guard.protect("posts:create"))):
        data = ctx.validate(PostCreate)
        ...

任意阶段失败都会抛出 AppException 直接终止请求，只有全部通过时才会进入处理函数
"""

import math
import json
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from fastapi import Depends, Request
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.authz import (
    AuthCheck, Authorizer, AuthorizedIdentity,
    IsAuthenticated, SqlUserStore, UserStore
)
from core.config import Settings, get_settings
from core.csrf import CsrfValidator, get_csrf_token_from_request, get_csrf_validator, requires_csrf
from core.database import get_db
from core.errors import (
    AppException, AuthException, CsrfException, ErrorCode, RateLimitException,
    ValidationException, format_validation_errors
)
from core.rate_limit import RateLimiter, get_rate_limiter
from core.sanitizer import InputSanitizer, input_sanitizer
from core.security import decode_token, extract_bearer_token
from utils.request import get_client_ip

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# 匿名访客的会话ID（用于访客评论等场景的 CSRF 绑定）
GUEST_SESSION_COOKIE = "guest_sid"

AUTH_REQUIRED = "required"
AUTH_OPTIONAL = "optional"
AUTH_NONE = "none"


class GuardStage(str, Enum):
    """守卫流水线阶段"""
    START = "start"
    RATE_LIMITED = "rate_limited"
    CSRF_CHECKED = "csrf_checked"
    SANITIZED = "sanitized"
    AUTHORIZED = "authorized"
    ALLOWED = "allowed"
    DENIED = "denied"


@dataclass(frozen=True)
class SecurityDecision:
    """每个请求只产生一次的最终裁决"""
    allowed: bool
    reason: Optional[str] = None
    http_status: int = 200

    @classmethod
    def allow(cls) -> "SecurityDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, exc: AppException) -> "SecurityDecision":
        return cls(allowed=False, reason=exc.message, http_status=exc.http_status)


@dataclass(frozen=True)
class CallerIdentity:
    """调用方身份（role 仅为会话声明，不参与授权判断）"""
    ip: str
    subject_id: Optional[int] = None
    session_id: Optional[str] = None
    claimed_role: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.subject_id is None

    @property
    def rate_limit_key(self) -> str:
        if self.subject_id is not None:
            return f"user:{self.subject_id}"
        return f"ip:{self.ip}"


def resolve_identity(request: Request) -> CallerIdentity:
    """从请求中解析调用方身份；令牌无效时视为匿名"""
    ip = get_client_ip(request)
    token = extract_bearer_token(request.headers.get("Authorization"))
    token_data = decode_token(token) if token else None

    if token_data is None:
        return CallerIdentity(ip=ip, session_id=request.cookies.get(GUEST_SESSION_COOKIE) or None)

    return CallerIdentity(
        ip=ip,
        subject_id=token_data.user_id,
        session_id=token_data.sid,
        claimed_role=token_data.role
    )


@dataclass
class GuardContext:
    """通过守卫后交给处理函数的上下文"""
    route_class: str
    identity: CallerIdentity
    stage: GuardStage = GuardStage.START
    decision: Optional[SecurityDecision] = None
    user: Optional[AuthorizedIdentity] = None
    payload: Any = None
    query: Dict[str, Any] = field(default_factory=dict)
    authorizer: Optional[Authorizer] = None

    async def require(self, check: AuthCheck) -> AuthorizedIdentity:
        """针对具体资源再做一次授权复核（重新查询存储）"""
        self.user = await self.authorizer.authorize(self.identity.subject_id, check)
        return self.user

    def validate(self, model: Type[ModelT], source: Optional[Any] = None) -> ModelT:
        """用 pydantic 模型校验已净化的数据（默认为请求体）"""
        data = self.payload if source is None else source
        try:
            return model.model_validate(data if data is not None else {})
        except ValidationError as e:
            raise ValidationException(errors=format_validation_errors(e.errors()))

    def validate_query(self, model: Type[ModelT]) -> ModelT:
        return self.validate(model, source=self.query)


class RequestGuard:
    """
    请求守卫流水线

    依赖全部通过构造参数传入，流水线内部不访问全局状态
    """

    def __init__(
        self,
        identity_resolver: Callable[[Request], CallerIdentity] = resolve_identity,
        rate_limiter: Optional[RateLimiter] = None,
        csrf_validator: Optional[CsrfValidator] = None,
        sanitizer: Optional[InputSanitizer] = None,
        user_store_factory: Callable[[AsyncSession], UserStore] = SqlUserStore,
        settings: Optional[Settings] = None
    ):
        settings = settings or get_settings()
        self.identity_resolver = identity_resolver
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.csrf_validator = csrf_validator or get_csrf_validator()
        self.sanitizer = sanitizer or input_sanitizer
        self.user_store_factory = user_store_factory
        self.rate_limit_enabled = settings.rate_limit_enabled
        self.csrf_enabled = settings.csrf_enabled
        self.store_timeout = settings.guard_store_timeout

    def authorizer(self, db: AsyncSession) -> Authorizer:
        return Authorizer(self.user_store_factory(db), timeout=self.store_timeout)

    def protect(self, route_class: str, auth: str = AUTH_REQUIRED):
        """
        生成 FastAPI 依赖

        Args:
            route_class: 路由类别（速率限制分区键），如 posts:create
            auth: required 必须登录 / optional 可匿名 / none 不做身份复核
        """
        if auth not in (AUTH_REQUIRED, AUTH_OPTIONAL, AUTH_NONE):
            raise ValueError(f"未知的认证要求: {auth}")

        async def dependency(request: Request, db: AsyncSession = Depends(get_db)) -> GuardContext:
            return await self.run(request, route_class, auth, db)

        return dependency

    async def run(self, request: Request, route_class: str, auth: str, db: AsyncSession) -> GuardContext:
        """按固定顺序执行各阶段"""
        ctx = GuardContext(
            route_class=route_class,
            identity=self.identity_resolver(request),
            authorizer=self.authorizer(db)
        )

        try:
            await self._check_rate_limit(ctx)
            ctx.stage = GuardStage.RATE_LIMITED

            await self._check_csrf(ctx, request)
            ctx.stage = GuardStage.CSRF_CHECKED

            await self._sanitize(ctx, request)
            ctx.stage = GuardStage.SANITIZED

            await self._authorize(ctx, auth)
            ctx.stage = GuardStage.AUTHORIZED
        except AppException as exc:
            logger.warning(
                f"请求被拦截: {route_class} | 阶段 {ctx.stage.value} | {exc.message} | {ctx.identity.rate_limit_key}"
            )
            ctx.stage = GuardStage.DENIED
            ctx.decision = SecurityDecision.deny(exc)
            raise

        ctx.stage = GuardStage.ALLOWED
        ctx.decision = SecurityDecision.allow()
        return ctx

    # ==================== 各阶段 ====================

    async def _check_rate_limit(self, ctx: GuardContext):
        ip = ctx.identity.ip
        if self.rate_limiter.is_blacklisted(ip):
            raise AppException(ErrorCode.IP_BLOCKED)

        if not self.rate_limit_enabled or self.rate_limiter.is_whitelisted(ip):
            return

        result = await self.rate_limiter.check(ctx.identity.rate_limit_key, ctx.route_class)
        if not result.allowed:
            raise RateLimitException(retry_after=math.ceil(result.reset_after))

    async def _check_csrf(self, ctx: GuardContext, request: Request):
        if not self.csrf_enabled or not requires_csrf(request.method):
            return

        token = get_csrf_token_from_request(request)
        if not await self.csrf_validator.validate(token, ctx.identity.session_id):
            raise CsrfException()

    async def _sanitize(self, ctx: GuardContext, request: Request):
        ctx.query = self.sanitizer.sanitize(dict(request.query_params))

        body = await request.body()
        if not body:
            ctx.payload = {}
            return
        try:
            raw = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationException("请求体不是合法的 JSON")
        ctx.payload = self.sanitizer.sanitize(raw)

    async def _authorize(self, ctx: GuardContext, auth: str):
        if auth == AUTH_NONE:
            return

        if auth == AUTH_OPTIONAL:
            if ctx.identity.is_anonymous:
                return
            try:
                ctx.user = await ctx.authorizer.authorize(ctx.identity.subject_id, IsAuthenticated())
            except AuthException:
                # 令牌对应的账号已失效，按匿名访问处理
                ctx.user = None
            return

        ctx.user = await ctx.authorizer.authorize(ctx.identity.subject_id, IsAuthenticated())


# 默认守卫实例
request_guard = RequestGuard()
