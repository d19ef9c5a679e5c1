"""Health check endpoints for monitoring and deployment verification."""

import time

from fastapi import APIRouter, Response, status

from src.core.database import check_database_connection
from src.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse
from src.services.errors import StatusCatalogNotReadyError
from src.services.status_catalog import get_status_catalog

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Basic health check to verify the service is running. Used by orchestrator liveness checks.",
)
async def health_check() -> HealthResponse:
    """Return basic health status.

    This endpoint should always return 200 if the service is running.
    It does not check external dependencies.

    Returns:
        HealthResponse: Current health status with timestamp.
    """
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "All dependencies healthy"},
        503: {"description": "One or more dependencies unhealthy"},
    },
    summary="Readiness check",
    description="Check if the database and order status catalog are available. Used by orchestrator readiness checks.",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Check readiness of all dependencies.

    Verifies that the service can reconcile payments by checking:
    - Database connectivity
    - Order status catalog (loaded on first check if needed)

    Returns 503 if any dependency is unhealthy.

    Args:
        response: FastAPI response object for setting status code.

    Returns:
        ReadinessResponse: Status of all dependency checks.
    """
    checks: list[CheckResult] = []

    start_time = time.perf_counter()
    db_result = await check_database_connection()
    latency_ms = (time.perf_counter() - start_time) * 1000

    checks.append(
        CheckResult(
            name="database",
            healthy=db_result["healthy"],
            latency_ms=round(latency_ms, 2),
            error=db_result.get("error"),
        )
    )

    start_time = time.perf_counter()
    catalog_error = None
    try:
        await get_status_catalog().ensure_loaded()
    except StatusCatalogNotReadyError as e:
        catalog_error = e.message
    latency_ms = (time.perf_counter() - start_time) * 1000

    checks.append(
        CheckResult(
            name="status_catalog",
            healthy=catalog_error is None,
            latency_ms=round(latency_ms, 2),
            error=catalog_error,
        )
    )

    all_healthy = all(check.healthy for check in checks)
    overall_status = HealthStatus.HEALTHY if all_healthy else HealthStatus.UNHEALTHY

    if not all_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(status=overall_status, checks=checks)
