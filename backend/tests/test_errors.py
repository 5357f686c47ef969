"""
错误处理模块测试
"""
import json
import pytest
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from httpx import AsyncClient, ASGITransport
from pydantic import BaseModel

from core.errors import (
    ErrorCode,
    AppException,
    ValidationException,
    AuthException,
    NotFoundException,
    PermissionException,
    ConflictException,
    CsrfException,
    RateLimitException,
    BusinessException,
    app_exception_handler,
    register_exception_handlers,
    format_validation_errors,
    success_response,
    error_response,
    ERROR_MESSAGES
)


class TestErrors:
    """错误处理测试"""

    def test_error_codes(self):
        assert ErrorCode.SUCCESS == 0
        assert ErrorCode.INTERNAL_ERROR == 1000
        assert ErrorCode.UNAUTHORIZED == 2001
        assert ErrorCode.BLOG_SLUG_EXISTS == 4004

    def test_app_exception(self):
        exc = AppException(code=ErrorCode.RESOURCE_NOT_FOUND)
        assert exc.http_status == status.HTTP_404_NOT_FOUND
        assert exc.message == ERROR_MESSAGES[ErrorCode.RESOURCE_NOT_FOUND]

        d = exc.to_dict()
        assert d == {"success": False, "code": 3002, "message": ERROR_MESSAGES[ErrorCode.RESOURCE_NOT_FOUND]}

        resp = exc.to_response()
        assert isinstance(resp, JSONResponse)
        assert resp.status_code == status.HTTP_404_NOT_FOUND

    def test_specific_exceptions(self):
        v_exc = ValidationException(errors=[{"field": "title", "message": "必填"}])
        assert v_exc.http_status == 400
        assert v_exc.to_dict()["errors"] == [{"field": "title", "message": "必填"}]

        assert AuthException().http_status == 401
        assert PermissionException().http_status == 403
        assert CsrfException().http_status == 403

        n_exc = NotFoundException("文章", ErrorCode.BLOG_POST_NOT_FOUND)
        assert n_exc.http_status == 404
        assert n_exc.message == "文章不存在"

        c_exc = ConflictException(code=ErrorCode.BLOG_SLUG_EXISTS)
        assert c_exc.http_status == 409

        b_exc = BusinessException(message="Biz Error")
        assert b_exc.code == ErrorCode.OPERATION_FAILED
        assert b_exc.message == "Biz Error"

    def test_rate_limit_exception(self):
        exc = RateLimitException(retry_after=42)
        assert exc.http_status == 429
        assert exc.headers == {"Retry-After": "42"}
        assert exc.to_response().headers["Retry-After"] == "42"

        # 至少 1 秒
        assert RateLimitException(retry_after=0).headers["Retry-After"] == "1"

    @pytest.mark.asyncio
    async def test_handler(self):
        exc = AppException(code=ErrorCode.INTERNAL_ERROR)
        resp = await app_exception_handler(None, exc)
        assert resp.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR

    def test_format_validation_errors(self):
        errors = format_validation_errors([
            {"loc": ("body", "title"), "msg": "Field required", "type": "missing"}
        ])
        assert errors == [{"field": "body.title", "message": "Field required", "type": "missing"}]

    def test_response_builders(self):
        s = success_response(data="test")
        assert s == {"success": True, "code": 0, "message": "操作成功", "data": "test"}

        e = error_response(code=ErrorCode.INTERNAL_ERROR)
        assert e["success"] is False
        assert e["code"] == 1000
        assert e["message"] == ERROR_MESSAGES[1000]
        assert "errors" not in e


class Item(BaseModel):
    name: str


def _make_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/api/boom")
    async def boom():
        raise RuntimeError("secret internal detail")

    @app.get("/api/conflict")
    async def conflict():
        raise ConflictException(code=ErrorCode.BLOG_SLUG_EXISTS)

    @app.post("/api/items")
    async def create_item(item: Item):
        return success_response(item.model_dump())

    return app


@pytest.mark.asyncio
class TestExceptionHandlers:
    """异常处理器集成测试"""

    async def test_unhandled_exception_is_generic(self):
        transport = ASGITransport(app=_make_app(), raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.get("/api/boom")

        assert resp.status_code == 500
        body = resp.json()
        assert body["code"] == ErrorCode.INTERNAL_ERROR
        assert "secret" not in json.dumps(body, ensure_ascii=False)
        assert resp.headers["X-Content-Type-Options"] == "nosniff"

    async def test_app_exception(self):
        transport = ASGITransport(app=_make_app())
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.get("/api/conflict")
        assert resp.status_code == 409
        assert resp.json()["code"] == ErrorCode.BLOG_SLUG_EXISTS

    async def test_request_validation_error(self):
        transport = ASGITransport(app=_make_app())
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.post("/api/items", json={})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == ErrorCode.VALIDATION_ERROR
        assert body["errors"][0]["field"] == "body.name"

    async def test_not_found_route(self):
        transport = ASGITransport(app=_make_app())
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            resp = await ac.get("/api/missing")
        assert resp.status_code == 404
        assert resp.json()["code"] == ErrorCode.RESOURCE_NOT_FOUND
