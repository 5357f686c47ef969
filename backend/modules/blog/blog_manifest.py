"""
博客模块清单
定义模块元信息、路由入口、权限声明与生命周期钩子
"""

import logging

from sqlalchemy import select

from core.database import async_session
from core.events import event_bus, Events
from core.loader import ModuleManifest

logger = logging.getLogger(__name__)

MODULE_ID = "blog"

API_ROUTES = [
    "/api/v1/blog/posts",
    "/api/v1/blog/categories",
    "/api/v1/blog/tags",
    "/api/v1/blog/comments",
]

PAGES = [
    "/blog",
    "/blog/post/:slug",
    "/blog/category/:slug",
    "/blog/tag/:slug",
    "/blog/admin",
]


def default_config() -> dict:
    return {
        "posts_per_page": 10,
        "allow_comments": True,
        "moderate_comments": True,
        "seo_enabled": True,
    }


def validate_config(config: dict) -> bool:
    """posts_per_page 与 allow_comments 为必填项"""
    per_page = config.get("posts_per_page")
    if not isinstance(per_page, int) or isinstance(per_page, bool) or per_page < 1:
        return False
    return isinstance(config.get("allow_comments"), bool)


async def on_install():
    """安装时写入默认博客设置（已有的值不覆盖）"""
    from models.system import SystemSetting

    async with async_session() as db:
        existing = set((await db.execute(
            select(SystemSetting.key).where(SystemSetting.category == MODULE_ID)
        )).scalars().all())

        added = 0
        for key, value in default_config().items():
            setting_key = f"blog_{key}"
            if setting_key in existing:
                continue
            db.add(SystemSetting(key=setting_key, value=value, category=MODULE_ID))
            added += 1

        await db.commit()
    logger.info(f"博客模块安装完成，写入默认设置 {added} 项")


async def on_enable():
    """启用时向宿主注册路由与页面"""
    event_bus.emit(Events.MODULE_ROUTES_REGISTER, MODULE_ID, {"module_id": MODULE_ID, "routes": API_ROUTES})
    event_bus.emit(Events.MODULE_PAGES_REGISTER, MODULE_ID, {"module_id": MODULE_ID, "pages": PAGES})


async def on_disable():
    """禁用时注销路由与页面"""
    event_bus.emit(Events.MODULE_ROUTES_UNREGISTER, MODULE_ID, {"module_id": MODULE_ID, "routes": API_ROUTES})
    event_bus.emit(Events.MODULE_PAGES_UNREGISTER, MODULE_ID, {"module_id": MODULE_ID, "pages": PAGES})


manifest = ModuleManifest(
    id=MODULE_ID,
    name="博客",
    version="1.0.0",
    description="文章发布、分类标签与评论",
    icon="📝",
    author="Press",

    router_prefix="/api/v1/blog",

    menu={
        "title": "博客",
        "icon": "📝",
        "path": "/blog",
        "order": 1,
        "children": [
            {"title": "文章列表", "path": "/blog", "icon": "📄"},
            {"title": "管理", "path": "/blog/admin", "icon": "⚙️"}
        ]
    },

    api_routes=API_ROUTES,
    pages=PAGES,

    permissions=[
        "blog.read",
        "blog.create",
        "blog.update",
        "blog.delete",
        "blog.moderate"
    ],

    enabled=True,

    on_install=on_install,
    on_enable=on_enable,
    on_disable=on_disable,

    default_config=default_config,
    config_validator=validate_config
)
