"""
Session verification for Roteiro.

Sessions are issued by the external auth provider as signed JWTs. This module
only verifies them:
- token read from the session cookie or an ``Authorization: Bearer`` header
- signature/expiry checked with PyJWT
- revoked token ids rejected via a Redis revocation list

``get_session`` takes an explicit header mapping so it can be called from the
ingress middleware before routing as well as from route dependencies.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from http.cookies import CookieError, SimpleCookie
from typing import Awaitable, Callable, Mapping, Optional, Protocol

import jwt
import structlog

from roteiro_server.core.config import Settings
from roteiro_server.core.redis import get_redis

log = structlog.get_logger()


@dataclass(frozen=True)
class SessionUser:
    id: uuid.UUID
    email: str
    name: str = ""
    email_verified: bool = False


@dataclass(frozen=True)
class Session:
    user: SessionUser
    token_id: Optional[str] = None


class SessionProvider(Protocol):
    async def get_session(self, headers: Mapping[str, str]) -> Optional[Session]: ...


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def decode_jwt(token: str, settings: Settings) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# JWT Revocation (Redis)
# ---------------------------------------------------------------------------

async def revoke_jwt(jti: str, ttl_seconds: int = 3600) -> None:
    """Add a JWT ID to the revocation list in Redis."""
    redis = await get_redis()
    await redis.setex(f"jwt:revoked:{jti}", ttl_seconds, "1")


async def is_jwt_revoked(jti: str) -> bool:
    """Check if a JWT ID has been revoked."""
    redis = await get_redis()
    return await redis.exists(f"jwt:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# Session provider
# ---------------------------------------------------------------------------

def _token_from_headers(headers: Mapping[str, str], cookie_name: str) -> Optional[str]:
    authorization = headers.get("authorization") or ""
    if authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token

    raw_cookie = headers.get("cookie")
    if raw_cookie:
        jar = SimpleCookie()
        try:
            jar.load(raw_cookie)
        except CookieError:
            return None
        morsel = jar.get(cookie_name)
        if morsel and morsel.value:
            return morsel.value
    return None


class JWTSessionProvider:
    """Verifies externally issued session tokens found in request headers."""

    def __init__(
        self,
        settings: Settings,
        is_revoked: Optional[Callable[[str], Awaitable[bool]]] = None,
    ):
        self.settings = settings
        self.is_revoked = is_revoked

    async def get_session(self, headers: Mapping[str, str]) -> Optional[Session]:
        token = _token_from_headers(headers, self.settings.session_cookie_name)
        if not token:
            return None

        try:
            payload = decode_jwt(token, self.settings)
            user_id = uuid.UUID(str(payload["sub"]))
        except (jwt.PyJWTError, KeyError, ValueError):
            log.info("session.invalid_token")
            return None

        jti = payload.get("jti")
        if jti and self.is_revoked is not None and await self.is_revoked(jti):
            log.info("session.revoked", jti=jti)
            return None

        return Session(
            user=SessionUser(
                id=user_id,
                email=str(payload.get("email") or ""),
                name=str(payload.get("name") or ""),
                email_verified=bool(payload.get("email_verified", False)),
            ),
            token_id=jti,
        )
