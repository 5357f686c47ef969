"""
Press Blog - 主入口
基于FastAPI的模块化内容系统

- 请求守卫（速率限制 / CSRF / 输入净化 / 授权复核）
- 请求日志中间件
- 安全响应头中间件
- 标准化错误处理
- 模块生命周期管理
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from core.config import get_settings
from core.database import init_db, close_db
from core.loader import init_loader
from core.events import event_bus, Events, Event
from core.cache import init_cache, close_cache, get_redis_client
from core.rate_limit import init_rate_limiter
from core.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from core.errors import register_exception_handlers, success_response

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# 减少第三方库的日志输出
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info(f"🚀 正在启动 {settings.app_name} v{settings.app_version}...")

    # 1. Redis（不可用时速率限制与 CSRF 使用内存存储）
    cache_ok = await init_cache()
    if not cache_ok:
        logger.warning("⚠️ Redis 缓存未启用，使用内存存储")

    # 2. 速率限制器
    init_rate_limiter(get_redis_client())
    if not settings.rate_limit_enabled:
        logger.info("ℹ️ 速率限制已禁用")

    # 3. 数据库（模块模型已在导入阶段注册）
    await init_db()

    # 4. 安装并启用模块
    await loader.enable_all()

    await event_bus.publish(Event(name=Events.SYSTEM_STARTUP, source="kernel"))
    logger.info(f"🎉 {settings.app_name} 启动完成")

    yield

    logger.info("🛑 系统关闭中...")
    await event_bus.publish(Event(name=Events.SYSTEM_SHUTDOWN, source="kernel"))
    await close_cache()
    await close_db()
    logger.info("👋 系统已关闭")


# ==================== 创建应用 ====================
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="模块化博客系统",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# ==================== 中间件配置（后添加的先执行） ====================

# 1. 安全响应头中间件
app.add_middleware(SecurityHeadersMiddleware)

# 2. 请求日志中间件
app.add_middleware(
    RequestLoggingMiddleware,
    skip_paths=["/health", "/api/docs", "/api/redoc", "/api/openapi.json"],
    slow_request_threshold=1.0  # 超过1秒的请求记录为慢请求
)


# ==================== 异常处理器 ====================
register_exception_handlers(app)


# ==================== 注册路由 ====================
from routers import auth

app.include_router(auth.router)

# 业务模块由加载器扫描 modules/ 目录挂载
loader = init_loader(app)
results = loader.load_all()
logger.info(f"✅ 已加载 {sum(1 for v in results.values() if v)} 个模块")


@app.get("/health", include_in_schema=False)
async def health():
    """健康检查"""
    return success_response({
        "status": "ok",
        "version": settings.app_version,
        "redis": get_redis_client() is not None
    })


# ==================== 启动入口 ====================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
