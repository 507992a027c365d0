"""
Main FastAPI application.

WHY: This is the entry point for the application. It configures logging,
middleware, routes, exception handlers and the startup hook.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpdesk.core.config import settings
from helpdesk.core.exceptions import AppException
from helpdesk.core.exception_handlers import (
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from helpdesk.core.logging import configure_logging
from helpdesk.db.session import AsyncSessionLocal, init_db
from helpdesk.middleware import SecurityHeadersMiddleware, RequestContextMiddleware, RateLimitMiddleware
from helpdesk.api import analytics, auth, health, tickets, users
from helpdesk.services.idempotency import IdempotencyService
from helpdesk.services.seed import seed_default_users


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Prepare storage before the first request.

    WHY: Runs once per process before the app serves traffic; nothing
    needs tearing down on shutdown beyond what the engine does itself.

    WHAT:
    - Creates missing tables
    - Seeds the demo accounts when SEED_DEFAULT_USERS is set
    - Drops idempotency records past their TTL
    """
    await init_db()

    async with AsyncSessionLocal() as session:
        if settings.SEED_DEFAULT_USERS:
            await seed_default_users(session)
        await IdempotencyService(session).purge_expired()
        await session.commit()

    logger.info(f"{settings.SERVICE_NAME} {settings.VERSION} started")
    yield


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern allows easier testing with different configurations
    and makes it possible to create multiple app instances if needed.

    Returns:
        Configured FastAPI application instance
    """
    configure_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Helpdesk ticketing API: tickets, SLAs, comments and timeline",
        version=settings.VERSION,
        docs_url=f"{settings.API_PREFIX}/docs",
        redoc_url=f"{settings.API_PREFIX}/redoc",
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )

    # Register exception handlers
    # WHY: Every failure leaves the service as {"error": {code, field?, message}}
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Middleware runs in reverse order of registration: CORS is outermost,
    # request context is closest to the routes.

    # Request id, client IP and user agent for log correlation
    app.add_middleware(RequestContextMiddleware)

    # Per-client request budget on everything under the API prefix
    app.add_middleware(RateLimitMiddleware)

    # Browser hardening headers on every response
    app.add_middleware(SecurityHeadersMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Idempotent-Replayed", "Retry-After"],
    )

    # Root endpoint
    @app.get("/", tags=["root"])
    async def root() -> dict:
        """Root endpoint with API information."""
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": f"{settings.API_PREFIX}/docs",
        }

    # Register API routers
    app.include_router(health.router, prefix=settings.API_PREFIX)
    app.include_router(auth.router, prefix=settings.API_PREFIX)
    app.include_router(tickets.router, prefix=settings.API_PREFIX)
    app.include_router(users.router, prefix=settings.API_PREFIX)
    app.include_router(analytics.router, prefix=settings.API_PREFIX)

    return app


# Create app instance
# WHY: Importable by uvicorn as helpdesk.main:app
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpdesk.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
