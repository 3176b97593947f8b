"""
Tests for session verification.

Covers:
- Token lookup from the Authorization header and the session cookie
- Signature, expiry and subject validation
- JWT revocation via Redis
- Session dependency on routes
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from conftest import FakeSessionProvider, make_session
from roteiro_server.core.auth import JWTSessionProvider, Session, decode_jwt
from roteiro_server.core.config import Settings
from roteiro_server.core.deps import require_session
from roteiro_server.core.errors import AppError, app_error_handler

SECRET = "roteiro-test-signing-secret-32-bytes"
SETTINGS = Settings(secret_key=SECRET, environment="test")


def make_token(sub=None, secret=SECRET, expires_in=timedelta(hours=1), **claims) -> str:
    payload = {
        "sub": str(sub or uuid.uuid4()),
        "email": "ana@example.com",
        "name": "Ana",
        "exp": datetime.now(timezone.utc) + expires_in,
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


# ---------------------------------------------------------------------------
# Unit Tests: JWT
# ---------------------------------------------------------------------------

class TestJWT:
    def test_decode_valid(self):
        user_id = uuid.uuid4()
        payload = decode_jwt(make_token(user_id), SETTINGS)
        assert payload["sub"] == str(user_id)

    def test_wrong_secret_fails(self):
        with pytest.raises(jwt.InvalidSignatureError):
            decode_jwt(make_token(secret="another-signing-secret-of-32-bytes"), SETTINGS)

    def test_expired_fails(self):
        with pytest.raises(jwt.ExpiredSignatureError):
            decode_jwt(make_token(expires_in=timedelta(seconds=-1)), SETTINGS)


# ---------------------------------------------------------------------------
# Unit Tests: session provider
# ---------------------------------------------------------------------------

class TestJWTSessionProvider:
    async def test_bearer_token(self):
        user_id = uuid.uuid4()
        provider = JWTSessionProvider(SETTINGS)

        session = await provider.get_session(
            {"authorization": f"Bearer {make_token(user_id, email_verified=True)}"}
        )

        assert session is not None
        assert session.user.id == user_id
        assert session.user.email == "ana@example.com"
        assert session.user.email_verified is True

    async def test_session_cookie(self):
        user_id = uuid.uuid4()
        provider = JWTSessionProvider(SETTINGS)
        cookie = f"theme=dark; {SETTINGS.session_cookie_name}={make_token(user_id)}"

        session = await provider.get_session({"cookie": cookie})

        assert session.user.id == user_id
        assert session.user.email_verified is False

    async def test_no_token(self):
        assert await JWTSessionProvider(SETTINGS).get_session({}) is None

    async def test_invalid_token(self):
        provider = JWTSessionProvider(SETTINGS)
        assert await provider.get_session({"authorization": "Bearer not-a-jwt"}) is None

    async def test_subject_must_be_uuid(self):
        provider = JWTSessionProvider(SETTINGS)
        token = jwt.encode({"sub": "user-1"}, SECRET, algorithm="HS256")
        assert await provider.get_session({"authorization": f"Bearer {token}"}) is None

    async def test_revoked_token(self):
        is_revoked = AsyncMock(return_value=True)
        provider = JWTSessionProvider(SETTINGS, is_revoked=is_revoked)

        session = await provider.get_session(
            {"authorization": f"Bearer {make_token(jti='abc')}"}
        )

        assert session is None
        is_revoked.assert_awaited_once_with("abc")

    async def test_revocation_not_checked_without_jti(self):
        is_revoked = AsyncMock(return_value=True)
        provider = JWTSessionProvider(SETTINGS, is_revoked=is_revoked)

        session = await provider.get_session({"authorization": f"Bearer {make_token()}"})

        assert isinstance(session, Session)
        is_revoked.assert_not_called()


# ---------------------------------------------------------------------------
# Unit Tests: JWT revocation
# ---------------------------------------------------------------------------

class TestJWTRevocation:
    async def test_revoke_and_check(self):
        mock_redis = AsyncMock()
        mock_redis.setex = AsyncMock()
        mock_redis.exists = AsyncMock(return_value=1)

        with patch("roteiro_server.core.auth.get_redis", return_value=mock_redis):
            from roteiro_server.core.auth import is_jwt_revoked, revoke_jwt

            await revoke_jwt("test-jti-123")
            mock_redis.setex.assert_called_once_with("jwt:revoked:test-jti-123", 3600, "1")

            assert await is_jwt_revoked("test-jti-123") is True

    async def test_non_revoked_jwt(self):
        mock_redis = AsyncMock()
        mock_redis.exists = AsyncMock(return_value=0)

        with patch("roteiro_server.core.auth.get_redis", return_value=mock_redis):
            from roteiro_server.core.auth import is_jwt_revoked

            assert await is_jwt_revoked("non-existent-jti") is False


# ---------------------------------------------------------------------------
# Route dependency
# ---------------------------------------------------------------------------

class TestRequireSession:
    def _client(self, session) -> TestClient:
        app = FastAPI()
        app.state.session_provider = FakeSessionProvider(session)
        app.add_exception_handler(AppError, app_error_handler)

        @app.get("/me")
        async def me(current: Session = Depends(require_session)):
            return {"user_id": str(current.user.id)}

        return TestClient(app)

    def test_authenticated(self):
        session = make_session()
        resp = self._client(session).get("/me")
        assert resp.status_code == 200
        assert resp.json() == {"user_id": str(session.user.id)}

    def test_unauthenticated(self):
        resp = self._client(None).get("/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHENTICATED"
