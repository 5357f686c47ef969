"""
统一响应格式
API返回的标准JSON结构
"""

from typing import Any, Generic, TypeVar, Optional, List
from pydantic import BaseModel

from core.errors import ErrorCode, success_response
from core.pagination import PageResult


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """统一API响应"""
    success: bool = True
    code: int = ErrorCode.SUCCESS
    message: str = "操作成功"
    data: Optional[T] = None


class Pagination(BaseModel):
    """分页信息"""
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PageData(BaseModel, Generic[T]):
    """分页数据"""
    items: List[T]
    pagination: Pagination


def success(data: Any = None, message: str = "操作成功") -> dict:
    """成功响应"""
    return success_response(data, message)


def paginate(result: PageResult, message: str = "获取成功") -> dict:
    """分页响应"""
    return success_response(result.to_dict(), message)
