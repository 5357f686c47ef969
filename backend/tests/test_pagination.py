"""
分页模块测试
"""
import pytest
from sqlalchemy import select
from core.pagination import (
    PaginationParams,
    PageResult,
    normalize_pagination,
    paginate_list,
    paginate
)


class TestPagination:
    """分页工具测试"""

    def test_normalize(self):
        assert normalize_pagination(1, 10) == (1, 10)
        assert normalize_pagination(0, 10) == (1, 10)
        assert normalize_pagination(-3, 10) == (1, 10)
        assert normalize_pagination(2, 0) == (2, 1)
        assert normalize_pagination(2, 500) == (2, 100)
        assert normalize_pagination(None, None) == (1, 10)
        assert normalize_pagination(1, None, default_limit=25) == (1, 25)

    def test_pagination_params(self):
        p = PaginationParams()
        assert p.page == 1
        assert p.limit == 10
        assert p.offset == 0

        p = PaginationParams(page=3, limit=10)
        assert p.offset == 20

        p = PaginationParams(page=0, limit=1000)
        assert p.page == 1
        assert p.limit == 100

    def test_page_result_95_items(self):
        """95 条、每页 10 条、第 3 页"""
        result = paginate_list(list(range(1, 96)), page=3, limit=10)

        assert result.items == list(range(21, 31))
        assert result.total == 95
        assert result.total_pages == 10
        assert result.has_next is True
        assert result.has_prev is True

    def test_last_and_first_page(self):
        last = paginate_list(list(range(1, 96)), page=10, limit=10)
        assert last.items == list(range(91, 96))
        assert last.has_next is False

        first = paginate_list(list(range(1, 96)), page=1, limit=10)
        assert first.has_prev is False

    def test_empty(self):
        result = PageResult.create([], 0, 1, 10)
        assert result.total_pages == 0
        assert result.has_next is False
        assert result.has_prev is False

    def test_to_dict(self):
        d = PageResult.create([1, 2], 12, 2, 10).to_dict()
        assert d["items"] == [1, 2]
        assert d["pagination"] == {
            "page": 2,
            "limit": 10,
            "total": 12,
            "total_pages": 2,
            "has_next": False,
            "has_prev": True
        }

    def test_transformer(self):
        result = paginate_list([1, 2, 3], page=1, limit=2, transformer=lambda x: x * 10)
        assert result.items == [10, 20]

    @pytest.mark.asyncio
    async def test_paginate_query(self, db_session):
        """数据库分页查询"""
        from models import User

        for i in range(25):
            db_session.add(User(username=f"user{i:02d}"))
        await db_session.commit()

        query = select(User).order_by(User.id)
        result = await paginate(db_session, query, page=3, limit=10, transformer=lambda u: u.username)

        assert result.total == 25
        assert result.total_pages == 3
        assert result.items == [f"user{i:02d}" for i in range(20, 25)]
        assert result.has_next is False
        assert result.has_prev is True
