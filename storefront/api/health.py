"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront.infrastructure.config import settings
from storefront.infrastructure.database import get_engine

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="storefront-checkout",
        version=settings.api_version,
    )


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """Check if service is ready to accept requests.

    With the database backend the database must answer a trivial query.
    """
    if settings.persistence_backend == "database":
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Database not ready", error=str(e))
            return JSONResponse(status_code=503, content={"status": "unavailable"})
    return JSONResponse(content={"status": "ready"})
