"""
Warden API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from warden.api.v1 import router as api_v1_router
from warden.core.cache import build_cache
from warden.core.config import Settings, get_settings
from warden.core.database import Storage, build_engine, init_db
from warden.core.errors import WardenError
from warden.core.logging import configure_logging
from warden.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from warden.services import Services, build_services
from warden_shared.schemas.common import ErrorDetail, ErrorResponse

log = structlog.get_logger()


def build_default_services(settings: Settings) -> Services:
    storage = Storage(
        build_engine(settings.database_url, echo=settings.debug),
        default_timeout=settings.storage_timeout_seconds,
    )
    cache = build_cache(
        settings.cache_backend,
        redis_url=settings.redis_url,
        ttl_seconds=settings.cache_ttl_seconds,
    )
    return build_services(storage, cache, settings)


async def warden_error_handler(request: Request, exc: WardenError) -> JSONResponse:
    """Render every domain error as {"error": {code, message, status}}."""
    if exc.status_code >= 500:
        log.warning("request.failed", error_kind=exc.kind.value, status=exc.status_code)
    body = ErrorResponse(error=ErrorDetail(**exc.to_dict()))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)
    services = services or build_default_services(settings)

    app = FastAPI(
        title="Warden",
        description="Multi-tenant authorization core: roles, memberships, invitations.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.services = services

    # Middleware (order matters - outermost last)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(WardenError, warden_error_handler)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database answers a trivial query."""
        async def ping(session):
            await session.execute(text("SELECT 1"))

        try:
            await services.storage.run(ping, readonly=True)
        except (WardenError, DBAPIError) as exc:
            log.warning("warden.not_ready", error=type(exc).__name__)
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        if settings.auto_create_schema:
            await init_db(services.storage)
        log.info("warden.starting", cache_backend=settings.cache_backend)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("warden.shutting_down")
        await services.close()

    return app
