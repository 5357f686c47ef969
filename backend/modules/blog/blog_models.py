"""
博客数据模型
表名遵循隔离协议：blog_前缀
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Boolean, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class BlogCategory(Base):
    """博客分类（支持层级）"""
    __tablename__ = "blog_categories"
    __table_args__ = {"extend_existing": True, "comment": "博客分类表"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True)
    slug: Mapped[str] = mapped_column(String(60), unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)  # #RRGGBB

    # SEO
    meta_title: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    meta_description: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    # 媒体
    image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    image_alt: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("blog_categories.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)


class BlogTag(Base):
    """博客标签"""
    __tablename__ = "blog_tags"
    __table_args__ = {"extend_existing": True, "comment": "博客标签表"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(30), unique=True)
    slug: Mapped[str] = mapped_column(String(40), unique=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)


class BlogPost(Base):
    """博客文章"""
    __tablename__ = "blog_posts"
    __table_args__ = {"extend_existing": True, "comment": "博客文章表"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(220), unique=True, index=True)
    content: Mapped[str] = mapped_column(Text)
    excerpt: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # 状态
    published: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    featured: Mapped[bool] = mapped_column(Boolean, default=False)

    # 统计
    views: Mapped[int] = mapped_column(Integer, default=0)
    likes: Mapped[int] = mapped_column(Integer, default=0)

    # SEO
    meta_title: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    meta_description: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    meta_keywords: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # 媒体
    featured_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    featured_image_alt: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # 作者
    author_id: Mapped[int] = mapped_column(Integer, index=True)

    # 时间
    published_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)

    # 关联关系
    categories: Mapped[list["BlogCategory"]] = relationship(
        "BlogCategory",
        secondary="blog_post_categories",
        lazy="selectin",
        viewonly=True
    )
    tags: Mapped[list["BlogTag"]] = relationship(
        "BlogTag",
        secondary="blog_post_tags",
        lazy="selectin",
        viewonly=True
    )


class BlogPostCategory(Base):
    """文章分类关联"""
    __tablename__ = "blog_post_categories"
    __table_args__ = (
        UniqueConstraint("post_id", "category_id", name="uq_blog_post_category"),
        {"extend_existing": True, "comment": "文章与分类关联表"}
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(Integer, ForeignKey("blog_posts.id", ondelete="CASCADE"), index=True)
    category_id: Mapped[int] = mapped_column(Integer, ForeignKey("blog_categories.id", ondelete="CASCADE"), index=True)


class BlogPostTag(Base):
    """文章标签关联"""
    __tablename__ = "blog_post_tags"
    __table_args__ = (
        UniqueConstraint("post_id", "tag_id", name="uq_blog_post_tag"),
        {"extend_existing": True, "comment": "文章与标签关联表"}
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(Integer, ForeignKey("blog_posts.id", ondelete="CASCADE"), index=True)
    tag_id: Mapped[int] = mapped_column(Integer, ForeignKey("blog_tags.id", ondelete="CASCADE"), index=True)


class BlogComment(Base):
    """博客评论（登录用户或访客，支持回复）"""
    __tablename__ = "blog_comments"
    __table_args__ = {"extend_existing": True, "comment": "博客评论表"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    content: Mapped[str] = mapped_column(Text)
    approved: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    # 访客信息
    author_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    author_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    author_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    post_id: Mapped[int] = mapped_column(Integer, ForeignKey("blog_posts.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("blog_comments.id", ondelete="CASCADE"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)
