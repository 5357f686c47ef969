"""
标准错误码体系
提供统一的错误码定义和异常处理

错误响应结构：{"success": false, "code": ..., "message": ..., "errors": [...]?}
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Any, Dict, List
from enum import IntEnum
from fastapi import status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(IntEnum):
    """
    标准错误码

    错误码规范：
    - 0: 成功
    - 1xxx: 系统级错误
    - 2xxx: 认证/授权/请求守卫错误
    - 3xxx: 业务通用错误
    - 4xxx: 模块级错误（各模块自定义）
    """

    # ==================== 成功 ====================
    SUCCESS = 0

    # ==================== 系统级错误 (1xxx) ====================
    INTERNAL_ERROR = 1000           # 服务器内部错误
    DATABASE_ERROR = 1001           # 数据库错误
    RATE_LIMIT_EXCEEDED = 1005      # 请求频率超限

    # ==================== 认证/授权错误 (2xxx) ====================
    UNAUTHORIZED = 2001             # 未认证（未登录）
    TOKEN_INVALID = 2003            # 令牌无效
    PERMISSION_DENIED = 2004        # 权限不足
    CSRF_INVALID = 2013             # CSRF Token 无效
    IP_BLOCKED = 2014               # IP 已被封禁

    # ==================== 业务通用错误 (3xxx) ====================
    VALIDATION_ERROR = 3001         # 参数验证失败
    RESOURCE_NOT_FOUND = 3002       # 资源不存在
    RESOURCE_EXISTS = 3003          # 资源已存在
    OPERATION_FAILED = 3005         # 操作失败

    # ==================== 模块级错误 (4xxx) ====================
    # 4000-4099: 博客模块
    BLOG_POST_NOT_FOUND = 4001
    BLOG_CATEGORY_NOT_FOUND = 4002
    BLOG_TAG_NOT_FOUND = 4003
    BLOG_SLUG_EXISTS = 4004
    BLOG_COMMENT_NOT_FOUND = 4005
    BLOG_COMMENTS_DISABLED = 4006


# 错误码对应的默认消息
ERROR_MESSAGES: Dict[int, str] = {
    ErrorCode.SUCCESS: "操作成功",

    ErrorCode.INTERNAL_ERROR: "服务器内部错误，请稍后重试",
    ErrorCode.DATABASE_ERROR: "数据库操作失败",
    ErrorCode.RATE_LIMIT_EXCEEDED: "请求过于频繁，请稍后重试",

    ErrorCode.UNAUTHORIZED: "请先登录",
    ErrorCode.TOKEN_INVALID: "无效的认证凭据",
    ErrorCode.PERMISSION_DENIED: "没有权限执行此操作",
    ErrorCode.CSRF_INVALID: "CSRF Token 验证失败，请刷新页面后重试",
    ErrorCode.IP_BLOCKED: "访问被拒绝",

    ErrorCode.VALIDATION_ERROR: "参数验证失败",
    ErrorCode.RESOURCE_NOT_FOUND: "请求的资源不存在",
    ErrorCode.RESOURCE_EXISTS: "资源已存在",
    ErrorCode.OPERATION_FAILED: "操作失败",

    ErrorCode.BLOG_POST_NOT_FOUND: "文章不存在",
    ErrorCode.BLOG_CATEGORY_NOT_FOUND: "分类不存在",
    ErrorCode.BLOG_TAG_NOT_FOUND: "标签不存在",
    ErrorCode.BLOG_SLUG_EXISTS: "该 slug 已被其他文章使用",
    ErrorCode.BLOG_COMMENT_NOT_FOUND: "评论不存在",
    ErrorCode.BLOG_COMMENTS_DISABLED: "评论功能已关闭",
}

# 错误码对应的 HTTP 状态码
ERROR_HTTP_STATUS: Dict[int, int] = {
    ErrorCode.SUCCESS: status.HTTP_200_OK,

    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DATABASE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.RATE_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,

    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.TOKEN_INVALID: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.CSRF_INVALID: status.HTTP_403_FORBIDDEN,
    ErrorCode.IP_BLOCKED: status.HTTP_403_FORBIDDEN,

    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.RESOURCE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.RESOURCE_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.OPERATION_FAILED: status.HTTP_400_BAD_REQUEST,

    ErrorCode.BLOG_POST_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BLOG_CATEGORY_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BLOG_TAG_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BLOG_SLUG_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.BLOG_COMMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BLOG_COMMENTS_DISABLED: status.HTTP_403_FORBIDDEN,
}


class AppException(Exception):
    """
    应用异常基类

    用于抛出业务异常，包含错误码和详细信息

    Usage:
        raise AppException(ErrorCode.RESOURCE_NOT_FOUND, "文章不存在")
        raise AppException(ErrorCode.VALIDATION_ERROR, errors=["标题不能为空"])
    """

    def __init__(
        self,
        code: int = ErrorCode.INTERNAL_ERROR,
        message: Optional[str] = None,
        errors: Optional[List[Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES.get(code, "未知错误")
        self.errors = errors
        self.headers = headers
        self.http_status = ERROR_HTTP_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """转换为字典"""
        return error_response(self.code, self.message, self.errors)

    def to_response(self) -> JSONResponse:
        """转换为 JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict(),
            headers=self.headers
        )


class ValidationException(AppException):
    """参数验证异常"""

    def __init__(self, message: str = "参数验证失败", errors: Optional[list] = None):
        super().__init__(code=ErrorCode.VALIDATION_ERROR, message=message, errors=errors)


class AuthException(AppException):
    """认证异常"""

    def __init__(self, code: int = ErrorCode.UNAUTHORIZED, message: Optional[str] = None):
        super().__init__(code=code, message=message)


class PermissionException(AppException):
    """权限异常"""

    def __init__(self, message: str = "没有权限执行此操作"):
        super().__init__(code=ErrorCode.PERMISSION_DENIED, message=message)


class CsrfException(AppException):
    """CSRF 校验失败"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(code=ErrorCode.CSRF_INVALID, message=message)


class RateLimitException(AppException):
    """请求频率超限，通过 Retry-After 告知客户端退避时间"""

    def __init__(self, retry_after: int = 60, message: Optional[str] = None):
        super().__init__(
            code=ErrorCode.RATE_LIMIT_EXCEEDED,
            message=message,
            headers={"Retry-After": str(max(1, int(retry_after)))}
        )
        self.retry_after = retry_after


class NotFoundException(AppException):
    """资源不存在异常"""

    def __init__(self, resource: str = "资源", code: int = ErrorCode.RESOURCE_NOT_FOUND):
        super().__init__(code=code, message=f"{resource}不存在")


class ConflictException(AppException):
    """资源冲突异常（如重复的 slug）"""

    def __init__(self, message: Optional[str] = None, code: int = ErrorCode.RESOURCE_EXISTS):
        super().__init__(code=code, message=message)


class BusinessException(AppException):
    """业务异常"""

    def __init__(self, code: int = ErrorCode.OPERATION_FAILED, message: str = "操作失败"):
        super().__init__(code=code, message=message)


# ==================== 异常处理器 ====================

async def app_exception_handler(request, exc: AppException):
    """AppException 异常处理器"""
    return exc.to_response()


async def unhandled_exception_handler(request, exc: Exception):
    """
    全局未捕获异常处理
    记录时间和错误信息（调试模式下附带堆栈），对调用方只返回通用消息
    """
    from core.config import get_settings
    from core.middleware import security_headers_for

    timestamp = datetime.now(timezone.utc).isoformat()
    path = request.url.path if request is not None else "-"
    logger.error(
        f"[{timestamp}] 未处理异常 {path}: {exc}",
        exc_info=get_settings().debug
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response(ErrorCode.INTERNAL_ERROR),
        # 该响应由最外层处理，不经过安全头中间件
        headers=security_headers_for(path)
    )


def register_exception_handlers(app):
    """
    注册异常处理器

    在 main.py 中调用：
        from core.errors import register_exception_handlers
        register_exception_handlers(app)
    """
    from fastapi.exceptions import RequestValidationError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_response(
                ErrorCode.VALIDATION_ERROR,
                errors=format_validation_errors(exc.errors())
            )
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request, exc: StarletteHTTPException):
        # 映射 HTTP 状态码到业务错误码
        code_mapping = {
            401: ErrorCode.UNAUTHORIZED,
            403: ErrorCode.PERMISSION_DENIED,
            404: ErrorCode.RESOURCE_NOT_FOUND,
            429: ErrorCode.RATE_LIMIT_EXCEEDED,
        }

        code = code_mapping.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
        message = str(exc.detail) if exc.detail else ERROR_MESSAGES.get(code, "请求失败")

        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, message)
        )


def format_validation_errors(raw_errors: List[dict]) -> List[dict]:
    """将 pydantic 的错误列表整理为 field/message/type 结构"""
    errors = []
    for error in raw_errors:
        errors.append({
            "field": ".".join(str(loc) for loc in error.get("loc", ())),
            "message": error.get("msg", ""),
            "type": error.get("type", "")
        })
    return errors


# ==================== 响应构建器 ====================

def success_response(data: Any = None, message: str = "操作成功") -> dict:
    """构建成功响应"""
    return {
        "success": True,
        "code": ErrorCode.SUCCESS,
        "message": message,
        "data": data
    }


def error_response(
    code: int = ErrorCode.INTERNAL_ERROR,
    message: Optional[str] = None,
    errors: Optional[List[Any]] = None
) -> dict:
    """构建错误响应"""
    body = {
        "success": False,
        "code": int(code),
        "message": message or ERROR_MESSAGES.get(code, "操作失败"),
    }
    if errors:
        body["errors"] = errors
    return body
