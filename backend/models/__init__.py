"""
数据模型目录
"""

from .account import User
from .system import SystemSetting

__all__ = ["User", "SystemSetting"]
