"""
统一分页工具
提供标准化的分页查询功能

分页参数为 page（从1开始）与 limit（夹取到 [1, 100]）
"""

import math
from typing import List, Optional, Any, Callable, Tuple
from pydantic import BaseModel, ConfigDict, Field

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

MAX_LIMIT = 100
DEFAULT_LIMIT = 10


def normalize_pagination(
    page: Optional[int],
    limit: Optional[int],
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT
) -> Tuple[int, int]:
    """
    规范化分页参数

    页码小于1时取1；limit 缺省时取默认值，越界时夹取到 [1, max_limit]
    """
    page = page if page and page >= 1 else 1
    if limit is None:
        limit = default_limit
    limit = max(1, min(limit, max_limit))
    return page, limit


class PaginationParams(BaseModel):
    """分页参数"""
    page: int = Field(default=1, description="页码，从1开始")
    limit: int = Field(default=DEFAULT_LIMIT, description="每页数量，夹取到 [1, 100]")

    def model_post_init(self, __context: Any):
        self.page, self.limit = normalize_pagination(self.page, self.limit)

    @property
    def offset(self) -> int:
        """计算偏移量"""
        return (self.page - 1) * self.limit


class PageResult(BaseModel):
    """分页结果"""
    items: List[Any] = Field(description="数据列表")
    total: int = Field(description="总记录数")
    page: int = Field(description="当前页码")
    limit: int = Field(description="每页数量")
    total_pages: int = Field(description="总页数")
    has_next: bool = Field(description="是否有下一页")
    has_prev: bool = Field(description="是否有上一页")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @classmethod
    def create(
        cls,
        items: List[Any],
        total: int,
        page: int,
        limit: int
    ) -> "PageResult":
        """创建分页结果"""
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1
        )

    def to_dict(self) -> dict:
        """转换为字典（用于API响应）"""
        return {
            "items": self.items,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "total_pages": self.total_pages,
                "has_next": self.has_next,
                "has_prev": self.has_prev
            }
        }


async def paginate(
    db: AsyncSession,
    query,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    transformer: Optional[Callable] = None
) -> PageResult:
    """
    通用分页查询

    Args:
        db: 数据库会话
        query: SQLAlchemy select 语句（已包含筛选与排序）
        page: 页码（从1开始）
        limit: 每页数量
        transformer: 可选的数据转换函数，用于将ORM对象转换为字典

    Usage:
        query = select(BlogPost).where(BlogPost.published == True)
        result = await paginate(db, query, page=1, limit=10)
    """
    page, limit = normalize_pagination(page, limit)

    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    items = list(result.scalars().all())

    if transformer:
        items = [transformer(item) for item in items]

    return PageResult.create(items=items, total=total, page=page, limit=limit)


def paginate_list(
    items: List[Any],
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    transformer: Optional[Callable] = None
) -> PageResult:
    """
    对内存中的列表进行分页

    Usage:
        result = paginate_list(list(range(1, 96)), page=3, limit=10)
        # result.items = [21, ..., 30]
    """
    page, limit = normalize_pagination(page, limit)
    offset = (page - 1) * limit
    page_items = items[offset:offset + limit]

    if transformer:
        page_items = [transformer(item) for item in page_items]

    return PageResult.create(items=page_items, total=len(items), page=page, limit=limit)
