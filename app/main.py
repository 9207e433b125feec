"""
Evaluation Admin API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import get_settings
from app.core.database import engine
from app.core.errors import register_exception_handlers
from app.core.identity import IdentityProviderClient
from app.core.logging_config import configure_logging
from app.core.middleware import CSRF_HEADER_NAME, CSRFMiddleware, SecurityHeadersMiddleware
from app.core.storage import ObjectStorage, StorageConfig
from app.api.v1 import router as api_v1_router

settings = get_settings()
log = structlog.get_logger()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Evaluation Admin",
        description="Organizations, invitations, Prolific recruitment and video delivery "
        "for the human-evaluation platform.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters - outermost first)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", CSRF_HEADER_NAME],
    )

    register_exception_handlers(app)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check endpoint: verifies database connectivity."""
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        configure_logging(settings.log_level, settings.log_format)
        # Fails fast on missing bucket / public URL
        app.state.storage = ObjectStorage(StorageConfig.from_settings(settings))
        app.state.identity = IdentityProviderClient.from_settings(settings)
        await app.state.identity.open()
        log.info(
            "app.started",
            identity_enabled=app.state.identity.enabled,
            bucket=app.state.storage.bucket_name,
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("app.stopping")
        await app.state.identity.close()

    return app


app = create_app()
