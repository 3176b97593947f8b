"""
Security middleware: security headers, trusted tenant-context injection.
"""

from __future__ import annotations

import re
from typing import AsyncContextManager, Callable

import structlog
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from roteiro_server.core.logging import clear_request_context
from roteiro_server.core.tenant import (
    ORG_ID_HEADER,
    ORG_ID_PROXY_MARKER_HEADER,
    PROXY_MARKER_VALUE,
    TenantResolver,
)

log = structlog.get_logger()

# ---------------------------------------------------------------------------
# Security Headers
# ---------------------------------------------------------------------------

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "0",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' https://cdn.jsdelivr.net; "
        "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
        "img-src 'self' data:; "
        "frame-ancestors 'none';"
    ),
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        return response


# ---------------------------------------------------------------------------
# Tenant context (trusted ingress)
# ---------------------------------------------------------------------------

_TRUSTED_HEADER_NAMES = {
    ORG_ID_HEADER.encode("latin-1"),
    ORG_ID_PROXY_MARKER_HEADER.encode("latin-1"),
}

ResolverScope = Callable[[], AsyncContextManager[TenantResolver]]


class TenantContextMiddleware(BaseHTTPMiddleware):
    """
    Strip client-supplied tenant headers and re-inject verified ones.

    Every inbound copy of ``x-org-id`` / ``x-org-id-proxy`` is removed. For
    tenant-scoped paths the resolver runs against the sanitized headers and,
    when it finds an organization, both headers are set on the request so the
    route-level guard can trust them. Unresolved requests pass through without
    tenant headers; the guard then answers 401 or 400 in its own order.
    """

    def __init__(
        self,
        app,
        resolver_scope: ResolverScope,
        api_prefix: str = "/api/v1/org",
        path_prefix: str = "/o",
    ):
        super().__init__(app)
        self.resolver_scope = resolver_scope
        self._scoped_paths = re.compile(
            rf"^(?:{re.escape(api_prefix)}(?:/|$)|{re.escape(path_prefix)}/[^/]+)"
        )

    def needs_tenant(self, path: str) -> bool:
        return bool(self._scoped_paths.match(path))

    async def dispatch(self, request: Request, call_next) -> Response:
        clear_request_context()
        raw = [
            (name, value)
            for name, value in request.scope["headers"]
            if name.lower() not in _TRUSTED_HEADER_NAMES
        ]
        if len(raw) != len(request.scope["headers"]):
            log.warning("tenant.stripped_client_headers", path=request.url.path)
        request.scope["headers"] = raw

        if self.needs_tenant(request.url.path):
            async with self.resolver_scope() as resolver:
                org_id = await resolver.resolve(request, trusted_headers=Headers(raw=raw))
            if org_id is not None:
                request.scope["headers"] = raw + [
                    (ORG_ID_HEADER.encode("latin-1"), str(org_id).encode("latin-1")),
                    (
                        ORG_ID_PROXY_MARKER_HEADER.encode("latin-1"),
                        PROXY_MARKER_VALUE.encode("latin-1"),
                    ),
                ]

        return await call_next(request)
