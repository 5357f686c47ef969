"""
PressBlog 核心模块
提供框架的基础设施和请求守卫

导出列表：
- 配置管理: get_settings, Settings
- 数据库: Base, get_db, async_session
- 令牌: create_token, decode_token, TokenData
- 缓存: Cache, get_cache, set_cache, delete_cache
- 事件系统: event_bus, Events, Event
- 模块加载: init_loader, get_module_loader, ModuleManifest
- 分页工具: paginate, PageResult, PaginationParams
- 错误处理: ErrorCode, AppException, success_response, error_response
- 请求守卫: request_guard, RequestGuard, GuardContext
"""

# 配置管理
from .config import get_settings, Settings, reload_settings

# 数据库
from .database import Base, get_db, async_session, init_db, close_db

# 令牌
from .security import create_token, decode_token, TokenData

# 缓存
from .cache import Cache, get_cache, set_cache, delete_cache, init_cache, close_cache

# 事件系统
from .events import event_bus, Events, Event, EventBus

# 模块加载
from .loader import init_loader, get_module_loader, ModuleManifest, LoadedModule

# 分页工具
from .pagination import paginate, paginate_list, PageResult, PaginationParams

# 错误处理
from .errors import (
    ErrorCode,
    AppException,
    ValidationException,
    AuthException,
    NotFoundException,
    PermissionException,
    ConflictException,
    CsrfException,
    RateLimitException,
    BusinessException,
    success_response,
    error_response,
    register_exception_handlers
)

# 请求守卫各阶段
from .rate_limit import rate_limiter, init_rate_limiter, RateLimiter
from .csrf import csrf_validator, CsrfValidator
from .sanitizer import input_sanitizer, InputSanitizer
from .authz import Authorizer, IsAuthenticated, IsAdmin, IsOwnerOrAdmin
from .guard import request_guard, RequestGuard, GuardContext

__all__ = [
    "get_settings", "Settings", "reload_settings",
    "Base", "get_db", "async_session", "init_db", "close_db",
    "create_token", "decode_token", "TokenData",
    "Cache", "get_cache", "set_cache", "delete_cache", "init_cache", "close_cache",
    "event_bus", "Events", "Event", "EventBus",
    "init_loader", "get_module_loader", "ModuleManifest", "LoadedModule",
    "paginate", "paginate_list", "PageResult", "PaginationParams",
    "ErrorCode", "AppException", "ValidationException", "AuthException",
    "NotFoundException", "PermissionException", "ConflictException",
    "CsrfException", "RateLimitException", "BusinessException",
    "success_response", "error_response", "register_exception_handlers",
    "rate_limiter", "init_rate_limiter", "RateLimiter",
    "csrf_validator", "CsrfValidator",
    "input_sanitizer", "InputSanitizer",
    "Authorizer", "IsAuthenticated", "IsAdmin", "IsOwnerOrAdmin",
    "request_guard", "RequestGuard", "GuardContext",
]
