"""
会话令牌模块单元测试
"""

from datetime import timedelta
from unittest.mock import patch

from jose import jwt

from core.config import get_settings
from core.security import create_token, decode_token, extract_bearer_token, TokenData


class TestToken:
    """JWT 令牌测试"""

    def test_round_trip(self):
        token = create_token(TokenData(user_id=5, username="u", role="admin", sid="abc"))
        data = decode_token(token)
        assert data.user_id == 5
        assert data.role == "admin"
        assert data.sid == "abc"

    def test_sid_generated(self):
        assert TokenData(user_id=1).sid != TokenData(user_id=1).sid

    def test_expired_token(self):
        token = create_token(TokenData(user_id=1), expires_delta=timedelta(seconds=-1))
        assert decode_token(token) is None

    def test_tampered_token(self):
        token = create_token(TokenData(user_id=1))
        assert decode_token(token.rsplit(".", 1)[0] + ".invalidsig") is None
        assert decode_token("not-a-token") is None

    def test_wrong_type(self):
        settings = get_settings()
        token = jwt.encode({"user_id": 1, "type": "refresh"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)
        assert decode_token(token) is None

    def test_old_secret_fallback(self):
        settings = get_settings()
        token = jwt.encode(
            {"user_id": 9, "sid": "s", "type": "access"},
            "previous-secret",
            algorithm=settings.jwt_algorithm
        )
        assert decode_token(token) is None
        with patch.object(settings, "jwt_secret_old", "previous-secret"):
            assert decode_token(token).user_id == 9


class TestBearer:

    def test_extract(self):
        assert extract_bearer_token("Bearer abc") == "abc"
        assert extract_bearer_token("bearer  abc ") == "abc"

    def test_invalid(self):
        assert extract_bearer_token(None) is None
        assert extract_bearer_token("Basic abc") is None
        assert extract_bearer_token("Bearer ") is None
