"""
数据验证模式目录
"""

from .response import ApiResponse, PageData, Pagination, success, paginate

__all__ = [
    # 响应
    "ApiResponse", "PageData", "Pagination", "success", "paginate"
]
