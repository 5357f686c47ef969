"""
系统数据模型
系统设置（模块安装时写入默认值）
"""

from datetime import datetime
from typing import Any, Optional
from sqlalchemy import String, Integer, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class SystemSetting(Base):
    """系统设置表"""
    __tablename__ = "sys_settings"
    __table_args__ = {"comment": "系统配置项表"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, index=True)  # 设置键
    value: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)  # 设置值（JSON格式）
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)  # 所属模块
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)
