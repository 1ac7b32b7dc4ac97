"""
Health Check Routes - System health and monitoring endpoints.

These endpoints are used for:
1. Load balancer health checks
2. Kubernetes liveness/readiness probes
3. Monitoring systems
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from companion import __version__
from companion.core.logging_config import get_logger
from companion.database.connection import DatabaseConnection, get_database
from companion.models.chat import HealthResponse, ReadinessResponse

logger = get_logger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health"],
)


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check endpoint",
    description="Returns 200 OK while the API process is running."
)
def health_check() -> HealthResponse:
    """
    Perform a basic health check.

    Does not touch the database or the AI backend.
    """
    logger.debug("Health check requested")
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.utcnow()
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    summary="Readiness check endpoint",
    description="Returns 503 when the database is unreachable."
)
def readiness_check(db: DatabaseConnection = Depends(get_database)):
    if db.check_connection():
        return ReadinessResponse(status="ready", database="connected")
    logger.warning("Readiness check failed: database unreachable")
    return JSONResponse(
        status_code=503,
        content=ReadinessResponse(status="not_ready", database="unreachable").model_dump(),
    )
