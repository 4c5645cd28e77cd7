"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ims_backend.core.config import Settings, settings as default_settings
from ims_backend.core.container import Services, build_services
from ims_backend.core.exceptions import IMSError
from ims_backend.core.middleware import setup_middleware
from ims_backend.core.rate_limiter import limiter

from ims_backend.api.auth import router as auth_router
from ims_backend.api.user import router as user_router
from ims_backend.api.admin import router as admin_router

logger = logging.getLogger("ims_backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    services: Services = app.state.services
    logger.info("Starting %s (policy mode: %s)", services.settings.APP_NAME, services.policy_mode.value)
    if services.cache_backend.health_check():
        logger.info("Cache backend ready")
    else:
        logger.warning("Cache backend not available; permission checks will fail with 503")

    yield

    logger.info("Shutting down %s", services.settings.APP_NAME)


async def ims_exception_handler(request: Request, exc: IMSError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
    )


def create_app(settings: Settings = default_settings, services: Optional[Services] = None) -> FastAPI:
    """Build the API with an explicit service graph."""
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = FastAPI(
        title="IMS Access Core API",
        description="Authorization and session lifecycle for the IMS backend",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services or build_services(settings)

    # Middleware
    setup_middleware(app, settings.CORS_ORIGINS)

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(IMSError, ims_exception_handler)

    # Register routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(user_router, prefix="/api")
    app.include_router(admin_router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": "0.1.0",
            "docs": "/docs",
        }

    @app.get("/api/health")
    async def health():
        """Quick health check endpoint."""
        return {"status": "ok", "cache": app.state.services.cache_backend.health_check()}

    return app


app = create_app()
