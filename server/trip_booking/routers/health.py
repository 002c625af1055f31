"""Health check router."""

import logging

from fastapi import APIRouter

from ..core.clock import utcnow
from ..schemas.health import HealthResponse, HealthStatus
from ..workers.manager import worker_manager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> HealthResponse:
    """
    Health check endpoint.

    Returns current service status, server time and background worker state.
    """
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        timestamp=utcnow(),
        workers=worker_manager.get_worker_status(),
    )

    logger.debug(
        "Health check requested",
        extra={"status": response_data.status, "workers": response_data.workers}
    )
    return response_data
