"""
Health and service metadata endpoints.

WHY: Load balancers and monitoring need an unauthenticated endpoint that
also says whether the database is reachable; _meta lets a client discover
what this deployment offers.
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core.clock import isoformat, utcnow
from helpdesk.core.config import settings
from helpdesk.db.session import get_db
from helpdesk.services.sla import SLA_HOURS


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

FEATURES = [
    "jwt-authentication",
    "role-based-access",
    "sla-tracking",
    "optimistic-locking",
    "idempotent-creation",
    "threaded-comments",
    "ticket-timeline",
    "full-text-search",
    "rate-limiting",
]


@router.get("/health", summary="Health check")
async def health_check(db: AsyncSession = Depends(get_db)) -> JSONResponse:
    """
    Health check endpoint.

    Returns:
        200 with database "connected", or 503 with "unavailable"
    """
    try:
        await db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Health check database ping failed: {e}")
        await db.rollback()
        database = "unavailable"

    healthy = database == "connected"
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "service": settings.SERVICE_NAME,
            "version": settings.VERSION,
            "timestamp": isoformat(utcnow()),
            "database": database,
        },
    )


@router.get("/_meta", summary="Service metadata")
async def meta() -> dict:
    """Name, version and feature list of this deployment."""
    return {
        "name": settings.PROJECT_NAME,
        "service": settings.SERVICE_NAME,
        "version": settings.VERSION,
        "api_prefix": settings.API_PREFIX,
        "docs": f"{settings.API_PREFIX}/docs",
        "features": FEATURES,
        "sla_hours": {priority.value: hours for priority, hours in SLA_HOURS.items()},
    }
