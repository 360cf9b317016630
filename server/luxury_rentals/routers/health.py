"""Health check router."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..core.config import settings
from ..core.timeutils import isoformat_z, utcnow
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping() -> JSONResponse:
    """Liveness ping for RPC clients; returns status, server time and version."""
    response_data = HealthResponse(
        status=HealthStatus.HEALTHY,
        service=settings.service_name,
        timestamp=utcnow(),
        version="1.0.0"
    )

    logger.debug(
        "Health ping",
        extra={"timestamp": isoformat_z(response_data.timestamp)}
    )

    return JSONResponse(
        status_code=200,
        content=response_data.model_dump(mode="json")
    )
