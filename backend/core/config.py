"""
系统配置管理
统一管理所有配置项，支持环境变量覆盖
"""

import logging
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
from urllib.parse import quote, quote_plus

# 获取backend目录的绝对路径
BACKEND_DIR = Path(__file__).parent.parent.resolve()
ENV_FILE = BACKEND_DIR / ".env"

DEFAULT_JWT_SECRET = "your-secret-key-change-in-production"


class Settings(BaseSettings):
    """系统配置"""

    # 应用信息
    app_name: str = "Press Blog"
    app_version: str = "1.0.0"
    debug: bool = False

    # 数据库配置（database_url 优先，未设置时按 MySQL 参数拼接）
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 3306
    db_user: str = "root"
    db_password: str = ""
    db_name: str = "press_blog"

    @property
    def db_url(self) -> str:
        if self.database_url:
            return self.database_url
        encoded_user = quote_plus(self.db_user)
        encoded_pwd = quote_plus(self.db_password)
        return f"mysql+aiomysql://{encoded_user}:{encoded_pwd}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Redis缓存配置（速率限制计数器与 CSRF Token 的共享存储）
    redis_enabled: bool = True
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None

    @property
    def redis_url(self) -> str:
        if self.redis_password:
            # URL 编码密码中的特殊字符
            encoded_password = quote(self.redis_password, safe='')
            return f"redis://default:{encoded_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # JWT令牌配置（会话签发由宿主系统负责，这里只负责解码）
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_secret_old: Optional[str] = None  # 旧密钥（用于密钥轮换）
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60

    # CSRF 防护配置
    csrf_enabled: bool = True
    csrf_token_expire_seconds: int = 3600  # Token 有效期：1小时
    csrf_max_memory_tokens: int = 10000    # 内存回退方案中最大 Token 数量

    # 速率限制配置
    rate_limit_enabled: bool = True
    rate_limit_window: int = 60  # 时间窗口（秒）
    rate_limit_grace_seconds: int = 60  # 窗口结束后保留计数器的宽限期（秒）
    rate_limit_whitelist_localhost: bool = False  # 是否将本地IP加入白名单（开发环境可开启）
    rate_limit_blacklist: List[str] = []

    # 受信任的反向代理（IP 或 CIDR），只有来自这些地址的请求才读取 X-Forwarded-For / X-Real-IP
    trusted_proxies: List[str] = []

    # 请求守卫：存储往返超时（秒）
    guard_store_timeout: float = 0.3

    # 博客默认配置
    blog_posts_per_page: int = 10
    blog_max_page_size: int = 100
    blog_excerpt_length: int = 150

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore"
    )


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    获取配置单例
    支持运行时重新加载（用于密钥轮换）
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()

        # 安全检查: 如果是生产环境且使用默认密钥，发出警告
        if not _settings_instance.debug and _settings_instance.jwt_secret == DEFAULT_JWT_SECRET:
            logging.getLogger("core.config").warning(
                "🚨 [安全警告] 您正在生产环境模式下使用默认的 JWT_SECRET！"
                "请立即在 .env 文件中配置 JWT_SECRET。"
            )
    return _settings_instance


def reload_settings() -> Settings:
    """
    重新加载配置（用于密钥轮换等场景）
    """
    global _settings_instance
    _settings_instance = Settings()
    return _settings_instance
