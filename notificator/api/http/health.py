"""Health check endpoint for monitoring service status."""

from fastapi import APIRouter, Response, status

from notificator.dependencies import PushServiceDep
from notificator.exceptions import StorageError
from notificator.logging import logger
from notificator.schemas import HealthResponse

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check endpoint",
    tags=["health"],
)
async def health_check(
    response: Response, service: PushServiceDep
) -> HealthResponse:
    """
    Check health status of the relay and its connection store.

    Returns:
        HealthResponse: Health status of the service and its store.
        Responds with 503 Service Unavailable if the store is unreachable.
    """
    storage_status = "healthy"

    try:
        if not await service.ping():
            storage_status = "unhealthy"
    except StorageError as e:
        logger.error(f"Storage health check failed: {e}")
        storage_status = "unhealthy"

    if storage_status == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(status=storage_status, storage=storage_status)
