"""
路由目录
"""

from . import auth

__all__ = ["auth"]
