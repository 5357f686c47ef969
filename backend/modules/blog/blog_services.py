"""
博客业务逻辑
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, update, or_, and_

from core.config import get_settings
from core.errors import ConflictException, ErrorCode, NotFoundException, BusinessException, ValidationException
from core.events import event_bus, Events
from core.pagination import PageResult, paginate
from models.account import User
from models.system import SystemSetting
from utils.text import generate_slug, generate_excerpt

from .blog_models import BlogPost, BlogCategory, BlogTag, BlogComment, BlogPostCategory, BlogPostTag
from .blog_schemas import (
    PostCreate, PostUpdate, PostListQuery,
    CategoryCreate, CategoryUpdate, TagCreate, CommentCreate
)

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "published_at": BlogPost.published_at,
    "created_at": BlogPost.created_at,
    "updated_at": BlogPost.updated_at,
    "title": BlogPost.title,
    "views": BlogPost.views,
    "likes": BlogPost.likes,
}

# 博客设置键（写入 sys_settings，category=blog）
BLOG_SETTING_DEFAULTS: Dict[str, Any] = {
    "blog_posts_per_page": 10,
    "blog_allow_comments": True,
    "blog_moderate_comments": True,
    "blog_seo_enabled": True,
}


def _escape_like(text: str) -> str:
    """转义 LIKE 通配符，搜索词按字面匹配"""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class BlogService:
    """博客服务"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============ 设置 ============

    async def get_setting(self, key: str) -> Any:
        """读取博客设置，未写入时返回默认值"""
        result = await self.db.execute(select(SystemSetting.value).where(SystemSetting.key == key))
        row = result.first()
        if row is None or row.value is None:
            return BLOG_SETTING_DEFAULTS.get(key)
        return row.value

    # ============ 分类 ============

    async def get_categories(self) -> List[BlogCategory]:
        """获取所有分类"""
        result = await self.db.execute(select(BlogCategory).order_by(BlogCategory.name))
        return list(result.scalars().all())

    @staticmethod
    def build_category_tree(categories: List[BlogCategory]) -> List[dict]:
        """按 parent_id 组装分类树（父分类缺失时视为顶级）"""
        from .blog_schemas import CategoryInfo

        nodes = {
            c.id: {**CategoryInfo.model_validate(c).model_dump(), "children": []}
            for c in categories
        }
        roots = []
        for category in categories:
            node = nodes[category.id]
            parent = nodes.get(category.parent_id) if category.parent_id else None
            if parent is not None:
                parent["children"].append(node)
            else:
                roots.append(node)
        return roots

    async def get_category(self, category_id: int) -> BlogCategory:
        """获取分类"""
        result = await self.db.execute(select(BlogCategory).where(BlogCategory.id == category_id))
        category = result.scalar_one_or_none()
        if not category:
            raise NotFoundException("分类", ErrorCode.BLOG_CATEGORY_NOT_FOUND)
        return category

    async def _ensure_unique(self, model, field: str, value: str, exclude_id: Optional[int] = None, message: str = ""):
        column = getattr(model, field)
        query = select(model.id).where(column == value)
        if exclude_id is not None:
            query = query.where(model.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictException(message or f"{value} 已存在")

    async def _check_parent(self, category_id: Optional[int], parent_id: Optional[int]):
        """父分类必须存在，且不能形成环"""
        if parent_id is None:
            return
        if category_id is not None and parent_id == category_id:
            raise ValidationException("分类不能以自身为父分类")

        seen = set()
        current = parent_id
        while current is not None:
            if current in seen:
                break
            seen.add(current)
            parent = await self.get_category(current)
            if category_id is not None and parent.parent_id == category_id:
                raise ValidationException("分类层级不能形成循环")
            current = parent.parent_id

    async def create_category(self, data: CategoryCreate) -> BlogCategory:
        """创建分类"""
        slug = data.slug or generate_slug(data.name)
        if not slug:
            raise ValidationException("无法根据名称生成 slug，请手动指定")
        await self._ensure_unique(BlogCategory, "name", data.name, message="分类名称已存在")
        await self._ensure_unique(BlogCategory, "slug", slug, message="分类 slug 已存在")
        await self._check_parent(None, data.parent_id)

        category = BlogCategory(**data.model_dump(exclude={"slug"}), slug=slug)
        self.db.add(category)
        await self.db.commit()
        await self.db.refresh(category)
        return category

    async def update_category(self, category_id: int, data: CategoryUpdate) -> BlogCategory:
        """更新分类"""
        category = await self.get_category(category_id)
        update_data = data.model_dump(exclude_unset=True)

        if "name" in update_data and update_data["name"] != category.name:
            await self._ensure_unique(BlogCategory, "name", update_data["name"], category_id, "分类名称已存在")
        if update_data.get("slug") and update_data["slug"] != category.slug:
            await self._ensure_unique(BlogCategory, "slug", update_data["slug"], category_id, "分类 slug 已存在")
        elif "slug" in update_data and not update_data["slug"]:
            update_data.pop("slug")
        if "parent_id" in update_data:
            await self._check_parent(category_id, update_data["parent_id"])

        for key, value in update_data.items():
            setattr(category, key, value)

        await self.db.commit()
        await self.db.refresh(category)
        return category

    async def delete_category(self, category_id: int):
        """删除分类（子分类提升为顶级，文章关联一并删除）"""
        category = await self.get_category(category_id)
        await self.db.execute(
            update(BlogCategory).where(BlogCategory.parent_id == category_id).values(parent_id=None)
        )
        await self.db.execute(delete(BlogPostCategory).where(BlogPostCategory.category_id == category_id))
        await self.db.delete(category)
        await self.db.commit()

    # ============ 标签 ============

    async def get_tags(self) -> List[BlogTag]:
        """获取所有标签"""
        result = await self.db.execute(select(BlogTag).order_by(BlogTag.name))
        return list(result.scalars().all())

    async def get_tag(self, tag_id: int) -> BlogTag:
        result = await self.db.execute(select(BlogTag).where(BlogTag.id == tag_id))
        tag = result.scalar_one_or_none()
        if not tag:
            raise NotFoundException("标签", ErrorCode.BLOG_TAG_NOT_FOUND)
        return tag

    async def create_tag(self, data: TagCreate) -> BlogTag:
        """创建标签（同 slug 已存在时直接返回已有标签）"""
        slug = data.slug or generate_slug(data.name)
        if not slug:
            raise ValidationException("无法根据名称生成 slug，请手动指定")

        result = await self.db.execute(
            select(BlogTag).where(or_(BlogTag.slug == slug, BlogTag.name == data.name))
        )
        tag = result.scalars().first()
        if tag:
            return tag

        tag = BlogTag(**data.model_dump(exclude={"slug"}), slug=slug)
        self.db.add(tag)
        await self.db.commit()
        await self.db.refresh(tag)
        return tag

    async def delete_tag(self, tag_id: int):
        tag = await self.get_tag(tag_id)
        await self.db.execute(delete(BlogPostTag).where(BlogPostTag.tag_id == tag_id))
        await self.db.delete(tag)
        await self.db.commit()

    # ============ 文章 ============

    def _list_conditions(self, query: PostListQuery, viewer_id: Optional[int], is_admin: bool) -> list:
        conditions = []

        if query.published is not None:
            conditions.append(BlogPost.published == query.published)

        # 非管理员只能看到已发布文章和自己的草稿
        if not is_admin:
            if viewer_id is None:
                conditions.append(BlogPost.published.is_(True))
            else:
                conditions.append(or_(BlogPost.published.is_(True), BlogPost.author_id == viewer_id))

        if query.featured is not None:
            conditions.append(BlogPost.featured == query.featured)

        if query.author:
            # 纯数字按作者ID，否则按作者邮箱
            if query.author.isdigit():
                conditions.append(BlogPost.author_id == int(query.author))
            else:
                conditions.append(BlogPost.author_id.in_(
                    select(User.id).where(User.email == query.author)
                ))

        if query.search:
            keyword = f"%{_escape_like(query.search)}%"
            conditions.append(or_(
                BlogPost.title.ilike(keyword, escape="\\"),
                BlogPost.content.ilike(keyword, escape="\\"),
                BlogPost.excerpt.ilike(keyword, escape="\\")
            ))

        if query.category:
            conditions.append(BlogPost.id.in_(
                select(BlogPostCategory.post_id)
                .join(BlogCategory, BlogCategory.id == BlogPostCategory.category_id)
                .where(BlogCategory.slug == query.category)
            ))

        if query.tag:
            conditions.append(BlogPost.id.in_(
                select(BlogPostTag.post_id)
                .join(BlogTag, BlogTag.id == BlogPostTag.tag_id)
                .where(BlogTag.slug == query.tag)
            ))

        return conditions

    async def list_posts(
        self,
        query: PostListQuery,
        viewer_id: Optional[int] = None,
        is_admin: bool = False,
        transformer: Optional[Callable[[BlogPost], Any]] = None
    ) -> PageResult:
        """
        获取文章列表

        Args:
            query: 已规范化的查询参数
            viewer_id: 复核后的调用方ID（匿名为 None）
            is_admin: 调用方是否为管理员（以存储中的角色为准）
            transformer: 可选的序列化函数
        """
        stmt = select(BlogPost)
        conditions = self._list_conditions(query, viewer_id, is_admin)
        if conditions:
            stmt = stmt.where(and_(*conditions))

        column = SORT_COLUMNS[query.sort_by]
        primary = column.asc() if query.order == "asc" else column.desc()
        # id 作为次级排序保证分页稳定
        secondary = BlogPost.id.asc() if query.order == "asc" else BlogPost.id.desc()
        stmt = stmt.order_by(primary, secondary)

        return await paginate(self.db, stmt, page=query.page, limit=query.limit, transformer=transformer)

    async def get_post(self, post_id: int) -> BlogPost:
        """获取文章"""
        result = await self.db.execute(
            select(BlogPost).where(BlogPost.id == post_id).execution_options(populate_existing=True)
        )
        post = result.scalar_one_or_none()
        if not post:
            raise NotFoundException("文章", ErrorCode.BLOG_POST_NOT_FOUND)
        return post

    async def get_post_by_slug(self, slug: str) -> BlogPost:
        """通过slug获取文章"""
        result = await self.db.execute(
            select(BlogPost).where(BlogPost.slug == slug).execution_options(populate_existing=True)
        )
        post = result.scalar_one_or_none()
        if not post:
            raise NotFoundException("文章", ErrorCode.BLOG_POST_NOT_FOUND)
        return post

    async def _ensure_slug_available(self, slug: str, exclude_id: Optional[int] = None):
        query = select(BlogPost.id).where(BlogPost.slug == slug)
        if exclude_id is not None:
            query = query.where(BlogPost.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ConflictException(code=ErrorCode.BLOG_SLUG_EXISTS)

    async def _check_relations(self, category_ids: List[int], tag_ids: List[int]):
        """关联的分类和标签必须存在"""
        if category_ids:
            found = set((await self.db.execute(
                select(BlogCategory.id).where(BlogCategory.id.in_(category_ids))
            )).scalars().all())
            missing = sorted(set(category_ids) - found)
            if missing:
                raise ValidationException(errors=[{"field": "categories", "message": f"分类不存在: {missing}"}])
        if tag_ids:
            found = set((await self.db.execute(
                select(BlogTag.id).where(BlogTag.id.in_(tag_ids))
            )).scalars().all())
            missing = sorted(set(tag_ids) - found)
            if missing:
                raise ValidationException(errors=[{"field": "tags", "message": f"标签不存在: {missing}"}])

    def _link_relations(self, post_id: int, category_ids: List[int], tag_ids: List[int]):
        for category_id in dict.fromkeys(category_ids):
            self.db.add(BlogPostCategory(post_id=post_id, category_id=category_id))
        for tag_id in dict.fromkeys(tag_ids):
            self.db.add(BlogPostTag(post_id=post_id, tag_id=tag_id))

    async def create_post(self, data: PostCreate, author_id: int) -> BlogPost:
        """创建文章"""
        slug = data.slug or generate_slug(data.title)
        if not slug:
            raise ValidationException("无法根据标题生成 slug，请手动指定")
        await self._ensure_slug_available(slug)
        await self._check_relations(data.categories, data.tags)

        post_data = data.model_dump(exclude={"slug", "categories", "tags"})
        post_data["slug"] = slug
        post_data["author_id"] = author_id
        post_data["excerpt"] = data.excerpt or generate_excerpt(data.content, get_settings().blog_excerpt_length)
        if data.published:
            post_data["published_at"] = datetime.now()

        post = BlogPost(**post_data)
        self.db.add(post)
        await self.db.flush()
        self._link_relations(post.id, data.categories, data.tags)
        await self.db.commit()

        logger.info(f"文章已创建: {post.id} ({slug})")
        event_bus.emit(Events.CONTENT_CREATED, "blog", {"type": "post", "id": post.id})
        return await self.get_post(post.id)

    async def update_post(self, post: BlogPost, data: PostUpdate) -> BlogPost:
        """
        更新文章（调用方需先完成作者/管理员授权）

        标题变化时重新生成 slug，内容变化时重新生成摘要，首次发布时记录发布时间
        """
        update_data = data.model_dump(exclude_unset=True, exclude={"categories", "tags"})

        for field in ("title", "content", "published", "featured"):
            if field in update_data and update_data[field] is None:
                raise ValidationException(errors=[{"field": field, "message": "不能为空"}])

        if "title" in update_data and update_data["title"] != post.title:
            slug = generate_slug(update_data["title"])
            if not slug:
                raise ValidationException("无法根据标题生成 slug")
            await self._ensure_slug_available(slug, exclude_id=post.id)
            update_data["slug"] = slug

        if "content" in update_data and update_data["content"] != post.content:
            if not update_data.get("excerpt"):
                update_data["excerpt"] = generate_excerpt(update_data["content"], get_settings().blog_excerpt_length)

        if update_data.get("published") and not post.published and post.published_at is None:
            update_data["published_at"] = datetime.now()

        if data.categories is not None or data.tags is not None:
            await self._check_relations(data.categories or [], data.tags or [])

        for key, value in update_data.items():
            setattr(post, key, value)

        if data.categories is not None:
            await self.db.execute(delete(BlogPostCategory).where(BlogPostCategory.post_id == post.id))
            self._link_relations(post.id, data.categories, [])
        if data.tags is not None:
            await self.db.execute(delete(BlogPostTag).where(BlogPostTag.post_id == post.id))
            self._link_relations(post.id, [], data.tags)

        await self.db.commit()
        event_bus.emit(Events.CONTENT_UPDATED, "blog", {"type": "post", "id": post.id})
        return await self.get_post(post.id)

    async def delete_post(self, post: BlogPost):
        """删除文章（调用方需先完成作者/管理员授权）"""
        post_id = post.id
        await self.db.execute(delete(BlogPostCategory).where(BlogPostCategory.post_id == post_id))
        await self.db.execute(delete(BlogPostTag).where(BlogPostTag.post_id == post_id))
        await self.db.execute(delete(BlogComment).where(BlogComment.post_id == post_id))
        await self.db.delete(post)
        await self.db.commit()
        logger.info(f"文章已删除: {post_id}")
        event_bus.emit(Events.CONTENT_DELETED, "blog", {"type": "post", "id": post_id})

    async def increment_views(self, post: BlogPost) -> int:
        """浏览量 +1（原子更新，不改动 updated_at）"""
        await self.db.execute(
            update(BlogPost)
            .where(BlogPost.id == post.id)
            .values(views=BlogPost.views + 1, updated_at=BlogPost.updated_at)
        )
        await self.db.commit()
        result = await self.db.execute(select(BlogPost.views).where(BlogPost.id == post.id))
        post.views = result.scalar_one()
        return post.views

    # ============ 评论 ============

    async def get_comment(self, comment_id: int) -> BlogComment:
        result = await self.db.execute(select(BlogComment).where(BlogComment.id == comment_id))
        comment = result.scalar_one_or_none()
        if not comment:
            raise NotFoundException("评论", ErrorCode.BLOG_COMMENT_NOT_FOUND)
        return comment

    async def list_comments(self, post_id: int, include_pending: bool = False) -> List[dict]:
        """获取文章评论（按回复关系组装为树）"""
        from .blog_schemas import CommentInfo

        query = select(BlogComment).where(BlogComment.post_id == post_id)
        if not include_pending:
            query = query.where(BlogComment.approved.is_(True))
        query = query.order_by(BlogComment.created_at.asc(), BlogComment.id.asc())
        comments = list((await self.db.execute(query)).scalars().all())

        nodes = {c.id: CommentInfo.model_validate(c).model_dump() for c in comments}
        roots = []
        for comment in comments:
            node = nodes[comment.id]
            parent = nodes.get(comment.parent_id) if comment.parent_id else None
            if parent is not None:
                parent["replies"].append(node)
            elif comment.parent_id is None:
                roots.append(node)
        return roots

    async def create_comment(self, post: BlogPost, data: CommentCreate, user_id: Optional[int]) -> BlogComment:
        """
        发表评论

        评论关闭时拒绝；开启审核时新评论待审核，否则直接通过
        """
        if not await self.get_setting("blog_allow_comments"):
            raise BusinessException(ErrorCode.BLOG_COMMENTS_DISABLED, "评论功能已关闭")

        if user_id is None and (not data.author_name or not data.author_email):
            raise ValidationException(errors=[{"field": "author_name", "message": "访客评论需填写称呼和邮箱"}])

        if data.parent_id is not None:
            parent = await self.get_comment(data.parent_id)
            if parent.post_id != post.id:
                raise ValidationException(errors=[{"field": "parent_id", "message": "回复的评论不属于该文章"}])

        moderate = await self.get_setting("blog_moderate_comments")
        comment = BlogComment(
            **data.model_dump(),
            post_id=post.id,
            user_id=user_id,
            approved=not moderate
        )
        self.db.add(comment)
        await self.db.commit()
        await self.db.refresh(comment)
        return comment

    async def approve_comment(self, comment_id: int) -> BlogComment:
        comment = await self.get_comment(comment_id)
        comment.approved = True
        await self.db.commit()
        await self.db.refresh(comment)
        return comment

    async def delete_comment(self, comment_id: int):
        """删除评论及其全部回复（逐层收集子孙评论）"""
        comment = await self.get_comment(comment_id)

        doomed = [comment.id]
        frontier = [comment.id]
        while frontier:
            result = await self.db.execute(select(BlogComment.id).where(BlogComment.parent_id.in_(frontier)))
            frontier = [row for row in result.scalars().all() if row not in doomed]
            doomed.extend(frontier)

        await self.db.execute(delete(BlogComment).where(BlogComment.id.in_(doomed)))
        await self.db.commit()
        logger.info(f"删除评论 {comment_id}（含 {len(doomed) - 1} 条回复）")
