"""
Health check endpoint with infrastructure checks.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from ingestflow import __version__
from ingestflow.api.dependencies import get_services
from ingestflow.api.models import ComponentHealth, HealthResponse
from ingestflow.services import Services

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _timed_check(check) -> ComponentHealth:
    start = time.perf_counter()
    try:
        healthy = await check()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check database and job stream connectivity.",
)
async def health_check(services: Services = Depends(get_services)) -> HealthResponse:
    """
    Status logic:
    - unhealthy: database is down
    - degraded: Redis is down (no job dispatch, no credentials)
    - healthy: all components operational
    """
    components = {
        "database": await _timed_check(services.database.health_check),
        "redis": await _timed_check(services.queue.health_check),
    }

    queue_depth = None
    if components["redis"].status == "healthy":
        try:
            queue_depth = await services.queue.get_stream_length()
        except Exception as e:
            logger.warning("Could not read job stream length", error=str(e))

    if components["database"].status == "unhealthy":
        status = "unhealthy"
    elif components["redis"].status == "unhealthy":
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        components=components,
        queue_depth=queue_depth,
        version=__version__,
    )
