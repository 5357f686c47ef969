"""
授权复核模块测试
"""
import asyncio
import pytest

from core.authz import (
    AuthorizedIdentity, Authorizer, UserStore, SqlUserStore,
    IsAuthenticated, IsAdmin, IsOwnerOrAdmin, DENY_MESSAGE
)
from core.errors import AppException, AuthException, ErrorCode, PermissionException


class DictUserStore(UserStore):
    """内存用户存储（记录查询次数）"""

    def __init__(self, users=None, delay: float = 0):
        self.users = dict(users or {})
        self.delay = delay
        self.calls = 0

    async def get_user(self, user_id):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.users.get(user_id)


class TestChecks:

    def test_is_authenticated(self):
        assert IsAuthenticated().allows(AuthorizedIdentity(1, "user"))

    def test_is_admin(self):
        assert IsAdmin().allows(AuthorizedIdentity(1, "admin"))
        assert not IsAdmin().allows(AuthorizedIdentity(1, "user"))

    def test_owner_or_admin(self):
        assert IsOwnerOrAdmin(5).allows(AuthorizedIdentity(5, "user"))
        assert not IsOwnerOrAdmin(5).allows(AuthorizedIdentity(6, "user"))
        assert IsOwnerOrAdmin(5).allows(AuthorizedIdentity(6, "admin"))
        assert not IsOwnerOrAdmin(None).allows(AuthorizedIdentity(6, "user"))


@pytest.mark.asyncio
class TestAuthorizer:
    """授权复核测试"""

    async def test_store_role_is_authoritative(self):
        """存储中的角色为准，会话声明无效"""
        store = DictUserStore({1: AuthorizedIdentity(1, "user")})
        authorizer = Authorizer(store, timeout=1)

        with pytest.raises(PermissionException) as exc_info:
            await authorizer.authorize(1, IsAdmin())
        assert exc_info.value.message == DENY_MESSAGE

    async def test_allowed(self):
        store = DictUserStore({1: AuthorizedIdentity(1, "admin")})
        identity = await Authorizer(store, timeout=1).authorize(1, IsAdmin())
        assert identity.is_admin

    async def test_anonymous(self):
        with pytest.raises(AuthException):
            await Authorizer(DictUserStore(), timeout=1).authorize(None, IsAuthenticated())

    async def test_unknown_or_inactive_user(self):
        store = DictUserStore({2: AuthorizedIdentity(2, "admin", is_active=False)})
        authorizer = Authorizer(store, timeout=1)

        with pytest.raises(AuthException) as missing:
            await authorizer.authorize(1, IsAuthenticated())
        with pytest.raises(AuthException) as inactive:
            await authorizer.authorize(2, IsAuthenticated())
        # 对调用方使用同一条消息
        assert missing.value.message == inactive.value.message == DENY_MESSAGE

    async def test_fresh_lookup_each_call(self):
        """每次授权都重新查询，角色变更立即生效"""
        store = DictUserStore({1: AuthorizedIdentity(1, "admin")})
        authorizer = Authorizer(store, timeout=1)

        await authorizer.authorize(1, IsAdmin())
        store.users[1] = AuthorizedIdentity(1, "user")
        with pytest.raises(PermissionException):
            await authorizer.authorize(1, IsAdmin())
        assert store.calls == 2

    async def test_timeout_is_internal_error(self):
        store = DictUserStore({1: AuthorizedIdentity(1, "admin")}, delay=0.5)
        with pytest.raises(AppException) as exc_info:
            await Authorizer(store, timeout=0.05).authorize(1, IsAdmin())
        assert exc_info.value.code == ErrorCode.INTERNAL_ERROR
        assert exc_info.value.http_status == 500


@pytest.mark.asyncio
class TestSqlUserStore:

    async def test_reads_current_row(self, db_session):
        from tests.test_conftest import create_test_user

        user = await create_test_user(db_session, username="sql-user", role="editor")
        identity = await SqlUserStore(db_session).get_user(user["id"])
        assert identity == AuthorizedIdentity(user["id"], "editor", True)

        assert await SqlUserStore(db_session).get_user(9999) is None
