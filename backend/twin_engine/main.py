"""
FastAPI application entry point.

This module configures the FastAPI application with:
- CORS middleware
- Security headers middleware
- Plugin manifest loading and registry sync on startup
- Health check endpoints
- Error taxonomy to HTTP mapping
- API routers
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from twin_engine import __version__
from twin_engine.config import get_settings
from twin_engine.dependencies import (
    get_manifest_registry,
    get_plugin_client,
    get_scheduler,
    get_template_provider,
)
from twin_engine.exceptions import TwinEngineError
from twin_engine.routers import (
    plugins,
    shell_descriptors,
    shells,
    submodel_descriptors,
    submodels,
)
from twin_engine.services.manifest_registry import ManifestRegistry

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Only add HSTS in production
        if get_settings().env == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    registry = get_manifest_registry()
    try:
        await registry.load_manifests()
    except TwinEngineError as e:
        # Readiness reports the failure; a refresh can recover
        logger.error(f"Plugin manifests could not be loaded at startup: {e.message}")

    scheduler = get_scheduler()
    scheduler.start()

    yield

    await scheduler.stop()
    await get_template_provider().close()
    await get_plugin_client().close()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="AAS Twin Engine",
        description=(
            "Federation gateway serving Asset Administration Shells whose "
            "values are sourced live from data plugins."
        ),
        version=__version__,
        docs_url="/api/docs" if settings.env != "production" else None,
        redoc_url="/api/redoc" if settings.env != "production" else None,
        openapi_url="/api/openapi.json" if settings.env != "production" else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    app.add_middleware(SecurityHeadersMiddleware)

    # Include routers
    app.include_router(shell_descriptors.router)
    app.include_router(shells.router)
    app.include_router(submodels.router)
    app.include_router(submodel_descriptors.router)
    app.include_router(plugins.router)

    # Health check endpoints
    @app.get("/health", tags=["health"])
    async def health_check():
        """Basic health check."""
        return {"status": "healthy", "version": __version__}

    @app.get("/health/liveness", tags=["health"])
    async def liveness_check():
        """Kubernetes liveness probe."""
        return {"status": "alive"}

    @app.get("/health/readiness", tags=["health"])
    async def readiness_check(
        registry: Annotated[ManifestRegistry, Depends(get_manifest_registry)],
    ):
        """Kubernetes readiness probe."""
        if not registry.is_healthy():
            return JSONResponse(
                status_code=503,
                content={"status": "not ready", "reason": "Plugin manifests unavailable"},
            )
        return {"status": "ready"}

    @app.get("/health/startup", tags=["health"])
    async def startup_check():
        """Kubernetes startup probe."""
        return {"status": "started"}

    @app.exception_handler(TwinEngineError)
    async def twin_engine_exception_handler(request: Request, exc: TwinEngineError):
        """Map engine errors to their HTTP status."""
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "type": type(exc).__name__},
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        if settings.debug:
            return JSONResponse(
                status_code=500,
                content={"detail": str(exc), "type": type(exc).__name__},
            )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "twin_engine.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.env == "development",
        workers=1 if settings.env == "development" else settings.workers,
    )
