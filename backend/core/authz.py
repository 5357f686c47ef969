"""
授权复核模块

会话令牌里的角色声明不可信。每一次授权判断都以会话中的用户ID为键，
从持久化存储重新读取 (id, role, is_active)，再据此判断权限。
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import AppException, AuthException, ErrorCode, PermissionException

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"

# 未认证与无权限对调用方使用同一条消息，避免泄露资源是否存在
DENY_MESSAGE = "无权访问该资源"


@dataclass(frozen=True)
class AuthorizedIdentity:
    """从存储中复核得到的身份"""
    id: int
    role: str
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


# ==================== 授权检查 ====================

class AuthCheck(ABC):
    """授权检查项"""

    @abstractmethod
    def allows(self, identity: AuthorizedIdentity) -> bool:
        ...


class IsAuthenticated(AuthCheck):
    """已登录且账号有效"""

    def allows(self, identity: AuthorizedIdentity) -> bool:
        return True

    def __repr__(self):
        return "IsAuthenticated()"


@dataclass(frozen=True)
class IsOwnerOrAdmin(AuthCheck):
    """资源作者本人或管理员"""
    resource_author_id: Optional[int]

    def allows(self, identity: AuthorizedIdentity) -> bool:
        return identity.is_admin or (
            self.resource_author_id is not None and identity.id == self.resource_author_id
        )


class IsAdmin(AuthCheck):
    """仅管理员"""

    def allows(self, identity: AuthorizedIdentity) -> bool:
        return identity.is_admin

    def __repr__(self):
        return "IsAdmin()"


# ==================== 用户存储 ====================

class UserStore(ABC):
    """用户存储能力接口：按ID读取 (id, role, is_active)"""

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[AuthorizedIdentity]:
        ...


class SqlUserStore(UserStore):
    """
    基于 sys_users 表的用户存储

    只查询列而不加载 ORM 实体，避免命中会话的身份映射缓存
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: int) -> Optional[AuthorizedIdentity]:
        from models.account import User

        result = await self.db.execute(
            select(User.id, User.role, User.is_active).where(User.id == user_id)
        )
        row = result.first()
        if row is None:
            return None
        return AuthorizedIdentity(id=row.id, role=row.role, is_active=bool(row.is_active))


class Authorizer:
    """
    授权复核器

    authorize(claimed_subject_id, check) -> AuthorizedIdentity
    """

    def __init__(self, store: UserStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout if timeout is not None else get_settings().guard_store_timeout

    async def lookup(self, user_id: int) -> Optional[AuthorizedIdentity]:
        """带超时的存储查询，超时视为内部错误"""
        try:
            return await asyncio.wait_for(self.store.get_user(user_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"用户存储查询超时（{self.timeout}s）: user_id={user_id}")
            raise AppException(ErrorCode.INTERNAL_ERROR)

    async def authorize(self, claimed_subject_id: Optional[int], check: AuthCheck) -> AuthorizedIdentity:
        """
        复核调用方身份并执行授权检查

        Raises:
            AuthException: 未登录、用户不存在或已禁用
            PermissionException: 检查未通过
            AppException: 存储查询超时
        """
        if claimed_subject_id is None:
            raise AuthException(message=DENY_MESSAGE)

        identity = await self.lookup(claimed_subject_id)
        if identity is None or not identity.is_active:
            logger.info(f"授权复核失败: 用户 {claimed_subject_id} 不存在或已禁用")
            raise AuthException(message=DENY_MESSAGE)

        if not check.allows(identity):
            logger.info(f"授权复核失败: 用户 {identity.id}（{identity.role}）未通过 {check!r}")
            raise PermissionException(DENY_MESSAGE)

        return identity
