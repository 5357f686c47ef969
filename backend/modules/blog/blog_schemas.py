"""
博客数据验证模式
"""

from datetime import datetime
from typing import Optional, List, Literal
from urllib.parse import urlparse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.pagination import normalize_pagination

SLUG_PATTERN = r"^[a-z0-9一-龥]+(?:-[a-z0-9一-龥]+)*$"
COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

SortField = Literal["published_at", "created_at", "updated_at", "title", "views", "likes"]


def _check_http_url(value: Optional[str]) -> Optional[str]:
    """空值放行；否则必须是 http(s) 绝对地址"""
    if value is None or value == "":
        return None
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("必须是有效的 http(s) URL")
    return value


# ============ 分类 ============

class CategoryCreate(BaseModel):
    """创建分类"""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=50)
    slug: Optional[str] = Field(None, max_length=60, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)
    image: Optional[str] = Field(None, max_length=500)
    image_alt: Optional[str] = Field(None, max_length=200)
    parent_id: Optional[int] = None

    @field_validator("image")
    @classmethod
    def check_image(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


class CategoryUpdate(BaseModel):
    """更新分类"""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=50)
    slug: Optional[str] = Field(None, max_length=60, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)
    image: Optional[str] = Field(None, max_length=500)
    image_alt: Optional[str] = Field(None, max_length=200)
    parent_id: Optional[int] = None

    @field_validator("image")
    @classmethod
    def check_image(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


class CategoryInfo(BaseModel):
    """分类信息"""
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    color: Optional[str] = None
    parent_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CategoryTree(CategoryInfo):
    """带子分类的分类信息"""
    children: List["CategoryTree"] = []


# ============ 标签 ============

class TagCreate(BaseModel):
    """创建标签"""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=30)
    slug: Optional[str] = Field(None, max_length=40, pattern=SLUG_PATTERN)
    description: Optional[str] = Field(None, max_length=200)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)


class TagInfo(BaseModel):
    """标签信息"""
    id: int
    name: str
    slug: str
    color: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============ 文章 ============

class PostCreate(BaseModel):
    """创建文章"""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    slug: Optional[str] = Field(None, max_length=220, pattern=SLUG_PATTERN)
    content: str = Field(..., min_length=1)
    excerpt: Optional[str] = Field(None, max_length=500)
    published: bool = False
    featured: bool = False
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)
    meta_keywords: Optional[str] = Field(None, max_length=255)
    featured_image: Optional[str] = Field(None, max_length=500)
    featured_image_alt: Optional[str] = Field(None, max_length=200)
    categories: List[int] = []
    tags: List[int] = []

    @field_validator("featured_image")
    @classmethod
    def check_featured_image(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


class PostUpdate(BaseModel):
    """更新文章（只更新显式提供的字段）"""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    excerpt: Optional[str] = Field(None, max_length=500)
    published: Optional[bool] = None
    featured: Optional[bool] = None
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)
    meta_keywords: Optional[str] = Field(None, max_length=255)
    featured_image: Optional[str] = Field(None, max_length=500)
    featured_image_alt: Optional[str] = Field(None, max_length=200)
    categories: Optional[List[int]] = None
    tags: Optional[List[int]] = None

    @field_validator("featured_image")
    @classmethod
    def check_featured_image(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


class PostListItem(BaseModel):
    """文章列表项"""
    id: int
    title: str
    slug: str
    excerpt: Optional[str] = None
    published: bool
    featured: bool
    views: int
    likes: int
    featured_image: Optional[str] = None
    featured_image_alt: Optional[str] = None
    author_id: int
    categories: List[CategoryInfo] = []
    tags: List[TagInfo] = []
    reading_time: int = 0
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PostInfo(PostListItem):
    """文章详情"""
    content: str
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None


class PostListQuery(BaseModel):
    """
    文章查询参数

    page 小于1时取1，limit 夹取到 [1, 100]
    """
    page: int = 1
    limit: Optional[int] = None
    search: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = None  # 分类 slug
    tag: Optional[str] = None       # 标签 slug
    author: Optional[str] = Field(None, max_length=255)  # 作者ID 或邮箱
    published: Optional[bool] = None
    featured: Optional[bool] = None
    sort_by: SortField = "published_at"
    order: Literal["asc", "desc"] = "desc"

    def normalized(self, default_limit: int, max_limit: int = 100) -> "PostListQuery":
        page, limit = normalize_pagination(self.page, self.limit, default_limit=default_limit, max_limit=max_limit)
        return self.model_copy(update={"page": page, "limit": limit})


# ============ 评论 ============

class CommentCreate(BaseModel):
    """发表评论（访客需填写称呼和邮箱）"""
    model_config = ConfigDict(str_strip_whitespace=True)

    content: str = Field(..., min_length=1, max_length=2000)
    author_name: Optional[str] = Field(None, min_length=1, max_length=50)
    author_email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    author_url: Optional[str] = Field(None, max_length=500)
    parent_id: Optional[int] = None

    @field_validator("author_url")
    @classmethod
    def check_author_url(cls, value: Optional[str]) -> Optional[str]:
        return _check_http_url(value)


class CommentInfo(BaseModel):
    """评论信息（不返回访客邮箱）"""
    id: int
    content: str
    approved: bool
    author_name: Optional[str] = None
    author_url: Optional[str] = None
    post_id: int
    user_id: Optional[int] = None
    parent_id: Optional[int] = None
    created_at: datetime
    replies: List["CommentInfo"] = []

    model_config = ConfigDict(from_attributes=True)
