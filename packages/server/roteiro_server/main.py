"""
Roteiro API Server

Entry point for the FastAPI application.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from roteiro_server.api.v1 import router as api_v1_router
from roteiro_server.api.v1 import tenant_routers
from roteiro_server.core.auth import JWTSessionProvider, SessionProvider, is_jwt_revoked
from roteiro_server.core.config import Settings, get_settings
from roteiro_server.core.database import get_session_context
from roteiro_server.core.errors import AppError, app_error_handler
from roteiro_server.core.logging import configure_logging
from roteiro_server.core.middleware import SecurityHeadersMiddleware, TenantContextMiddleware
from roteiro_server.core.rate_limit import RateLimiter, build_rate_limiter
from roteiro_server.core.redis import close_redis, configure_redis, get_redis
from roteiro_server.core.stores import SqlAuthorizationStore
from roteiro_server.core.tenant import TenantResolver, TenantResolverConfig

log = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    session_provider: Optional[SessionProvider] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Roteiro",
        description="Tenant-scoped authorization core for the Roteiro forms platform.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Process-wide collaborators, built once
    app.state.settings = settings
    configure_redis(settings.redis_url)
    app.state.tenant_config = TenantResolverConfig.from_settings(settings)
    app.state.session_provider = session_provider or JWTSessionProvider(
        settings, is_revoked=is_jwt_revoked if settings.redis_url else None
    )
    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings)

    @asynccontextmanager
    async def resolver_scope():
        async with get_session_context() as session:
            store = SqlAuthorizationStore(session)
            yield TenantResolver(
                app.state.tenant_config, store, store, app.state.session_provider
            )

    app.add_exception_handler(AppError, app_error_handler)

    # Middleware (last added runs first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        TenantContextMiddleware,
        resolver_scope=resolver_scope,
        path_prefix=app.state.tenant_config.path_prefix,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(api_v1_router, prefix="/api/v1")

    tenant_prefix = app.state.tenant_config.path_prefix
    for base in ("/api/v1/org", f"{tenant_prefix}/{{orgRef}}/api/v1/org"):
        for tenant_router in tenant_routers:
            app.include_router(tenant_router, prefix=base)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: database reachable, and Redis when configured."""
        async with get_session_context() as session:
            await session.execute(text("SELECT 1"))
        if settings.redis_url:
            redis = await get_redis()
            await redis.ping()
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info(
            "roteiro.starting",
            environment=settings.environment,
            allowed_domains=list(app.state.tenant_config.allowed_domains),
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("roteiro.shutting_down")
        await close_redis()

    return app


app = create_app()
