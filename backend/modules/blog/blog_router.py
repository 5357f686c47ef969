"""
博客API路由
RESTful风格，所有接口都经过请求守卫（速率限制 -> CSRF -> 净化 -> 授权复核）
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.authz import IsAdmin, IsOwnerOrAdmin
from core.config import get_settings
from core.database import get_db
from core.errors import AuthException, ErrorCode, NotFoundException, PermissionException
from core.guard import GuardContext, request_guard
from schemas import success, paginate
from utils.text import calculate_reading_time

from .blog_models import BlogPost
from .blog_schemas import (
    PostCreate, PostUpdate, PostInfo, PostListItem, PostListQuery,
    CategoryCreate, CategoryUpdate, CategoryInfo,
    TagCreate, TagInfo, CommentCreate, CommentInfo
)
from .blog_services import BlogService

router = APIRouter()


def _post_item(post: BlogPost, schema=PostListItem) -> dict:
    """文章序列化（附带阅读时长）"""
    data = schema.model_validate(post).model_dump()
    data["reading_time"] = calculate_reading_time(post.content)
    return data


# ============ 分类接口 ============

@router.get("/categories")
async def list_categories(
    ctx: GuardContext = Depends(request_guard.protect("categories:list", auth="none")),
    db: AsyncSession = Depends(get_db)
):
    """获取分类列表（树形）"""
    service = BlogService(db)
    categories = await service.get_categories()
    return success(service.build_category_tree(categories))


@router.post("/categories")
async def create_category(
    ctx: GuardContext = Depends(request_guard.protect("categories:write")),
    db: AsyncSession = Depends(get_db)
):
    """创建分类（管理员）"""
    await ctx.require(IsAdmin())
    data = ctx.validate(CategoryCreate)
    category = await BlogService(db).create_category(data)
    return success(CategoryInfo.model_validate(category).model_dump(), "创建成功")


@router.put("/categories/{category_id}")
async def update_category(
    category_id: int,
    ctx: GuardContext = Depends(request_guard.protect("categories:write")),
    db: AsyncSession = Depends(get_db)
):
    """更新分类（管理员）"""
    await ctx.require(IsAdmin())
    data = ctx.validate(CategoryUpdate)
    category = await BlogService(db).update_category(category_id, data)
    return success(CategoryInfo.model_validate(category).model_dump(), "更新成功")


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: int,
    ctx: GuardContext = Depends(request_guard.protect("categories:write")),
    db: AsyncSession = Depends(get_db)
):
    """删除分类（管理员）"""
    await ctx.require(IsAdmin())
    await BlogService(db).delete_category(category_id)
    return success(message="删除成功")


# ============ 标签接口 ============

@router.get("/tags")
async def list_tags(
    ctx: GuardContext = Depends(request_guard.protect("tags:list", auth="none")),
    db: AsyncSession = Depends(get_db)
):
    """获取标签列表"""
    tags = await BlogService(db).get_tags()
    return success([TagInfo.model_validate(t).model_dump() for t in tags])


@router.post("/tags")
async def create_tag(
    ctx: GuardContext = Depends(request_guard.protect("tags:write")),
    db: AsyncSession = Depends(get_db)
):
    """创建标签（登录用户）"""
    data = ctx.validate(TagCreate)
    tag = await BlogService(db).create_tag(data)
    return success(TagInfo.model_validate(tag).model_dump())


@router.delete("/tags/{tag_id}")
async def delete_tag(
    tag_id: int,
    ctx: GuardContext = Depends(request_guard.protect("tags:write")),
    db: AsyncSession = Depends(get_db)
):
    """删除标签（管理员）"""
    await ctx.require(IsAdmin())
    await BlogService(db).delete_tag(tag_id)
    return success(message="删除成功")


# ============ 文章接口 ============

@router.get("/posts")
async def list_posts(
    ctx: GuardContext = Depends(request_guard.protect("posts:list", auth="optional")),
    db: AsyncSession = Depends(get_db)
):
    """获取文章列表（匿名只能看到已发布文章）"""
    service = BlogService(db)
    per_page = await service.get_setting("blog_posts_per_page")
    query = ctx.validate_query(PostListQuery).normalized(
        default_limit=int(per_page),
        max_limit=get_settings().blog_max_page_size
    )

    result = await service.list_posts(
        query,
        viewer_id=ctx.user.id if ctx.user else None,
        is_admin=bool(ctx.user and ctx.user.is_admin),
        transformer=_post_item
    )
    return paginate(result)


@router.post("/posts", status_code=201)
async def create_post(
    ctx: GuardContext = Depends(request_guard.protect("posts:create")),
    db: AsyncSession = Depends(get_db)
):
    """创建文章"""
    data = ctx.validate(PostCreate)
    post = await BlogService(db).create_post(data, ctx.user.id)
    return success(_post_item(post, PostInfo), "创建成功")


@router.get("/posts/{slug}")
async def get_post(
    slug: str,
    ctx: GuardContext = Depends(request_guard.protect("posts:detail", auth="optional")),
    db: AsyncSession = Depends(get_db)
):
    """通过 slug 获取文章详情（未发布文章只对作者和管理员可见）"""
    service = BlogService(db)
    post = await service.get_post_by_slug(slug)

    if not post.published:
        if ctx.identity.is_anonymous:
            raise NotFoundException("文章", ErrorCode.BLOG_POST_NOT_FOUND)
        try:
            await ctx.require(IsOwnerOrAdmin(post.author_id))
        except (AuthException, PermissionException):
            raise NotFoundException("文章", ErrorCode.BLOG_POST_NOT_FOUND)

    await service.increment_views(post)
    return success(_post_item(post, PostInfo))


@router.put("/posts/{post_id}")
async def update_post(
    post_id: int,
    ctx: GuardContext = Depends(request_guard.protect("posts:update")),
    db: AsyncSession = Depends(get_db)
):
    """更新文章（作者或管理员）"""
    service = BlogService(db)
    post = await service.get_post(post_id)
    await ctx.require(IsOwnerOrAdmin(post.author_id))

    data = ctx.validate(PostUpdate)
    post = await service.update_post(post, data)
    return success(_post_item(post, PostInfo), "更新成功")


@router.delete("/posts/{post_id}")
async def delete_post(
    post_id: int,
    ctx: GuardContext = Depends(request_guard.protect("posts:delete")),
    db: AsyncSession = Depends(get_db)
):
    """删除文章（作者或管理员）"""
    service = BlogService(db)
    post = await service.get_post(post_id)
    await ctx.require(IsOwnerOrAdmin(post.author_id))

    await service.delete_post(post)
    return success(message="删除成功")


# ============ 评论接口 ============

@router.get("/posts/{post_id}/comments")
async def list_comments(
    post_id: int,
    ctx: GuardContext = Depends(request_guard.protect("comments:list", auth="optional")),
    db: AsyncSession = Depends(get_db)
):
    """获取文章的已审核评论（含回复）"""
    service = BlogService(db)
    post = await service.get_post(post_id)
    if not post.published and not (ctx.user and (ctx.user.is_admin or ctx.user.id == post.author_id)):
        raise NotFoundException("文章", ErrorCode.BLOG_POST_NOT_FOUND)

    return success(await service.list_comments(post.id))


@router.post("/posts/{post_id}/comments")
async def create_comment(
    post_id: int,
    ctx: GuardContext = Depends(request_guard.protect("comments:create", auth="optional")),
    db: AsyncSession = Depends(get_db)
):
    """发表评论（登录用户或填写称呼和邮箱的访客）"""
    service = BlogService(db)
    post = await service.get_post(post_id)
    if not post.published:
        raise NotFoundException("文章", ErrorCode.BLOG_POST_NOT_FOUND)

    data = ctx.validate(CommentCreate)
    comment = await service.create_comment(post, data, ctx.user.id if ctx.user else None)
    message = "评论已发表" if comment.approved else "评论已提交，等待审核"
    return success(CommentInfo.model_validate(comment).model_dump(), message)


@router.put("/comments/{comment_id}/approve")
async def approve_comment(
    comment_id: int,
    ctx: GuardContext = Depends(request_guard.protect("comments:moderate")),
    db: AsyncSession = Depends(get_db)
):
    """审核通过评论（管理员）"""
    await ctx.require(IsAdmin())
    comment = await BlogService(db).approve_comment(comment_id)
    return success(CommentInfo.model_validate(comment).model_dump(), "审核通过")


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: int,
    ctx: GuardContext = Depends(request_guard.protect("comments:moderate")),
    db: AsyncSession = Depends(get_db)
):
    """删除评论（管理员）"""
    await ctx.require(IsAdmin())
    await BlogService(db).delete_comment(comment_id)
    return success(message="删除成功")
