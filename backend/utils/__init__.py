"""
工具函数目录
按功能分类组织
"""

from .text import generate_slug, generate_excerpt, calculate_reading_time, strip_markup, truncate
from .request import get_client_ip, get_user_agent, normalize_ip

__all__ = [
    # 文本处理
    "generate_slug",
    "generate_excerpt",
    "calculate_reading_time",
    "strip_markup",
    "truncate",
    # 请求处理
    "get_client_ip",
    "get_user_agent",
    "normalize_ip"
]
