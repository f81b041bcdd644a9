"""Health check endpoint."""

import structlog
from fastapi import APIRouter, HTTPException, Request, status

from studio_api.config import settings
from studio_api.models.responses import ErrorResponse, HealthResponse

logger = structlog.get_logger()
router = APIRouter(tags=["backend"])


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"model": ErrorResponse}},
    summary="Health check",
    description="Check if the service is running and the database answers queries.",
)
def health_check(request: Request) -> HealthResponse:
    """
    Perform health check.

    Validates:
    - Service is running
    - The store is open and answers ``SELECT 1``
    """
    db = getattr(request.app.state, "db", None)
    database_available = db is not None and db.ping()

    logger.info(
        "health_check",
        status="healthy" if database_available else "unhealthy",
    )

    if not database_available:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "database_unavailable",
                "message": "The database is not accessible",
                "details": {"database_path": str(settings.database_path)},
            },
        )

    return HealthResponse(
        status="healthy",
        version=settings.api_version,
        database_available=True,
        details={"database_path": str(settings.database_path)},
    )
